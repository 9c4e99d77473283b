"""RSS feed processing for the legislator site worker."""

import re
from collections.abc import Callable, Iterable
from typing import TypeVar

from bs4 import BeautifulSoup

from .errors import UpstreamError
from .http_client import HttpClient
from .logging_config import create_execution_logger
from .models import FeedItem

T = TypeVar("T")

NAMED_ENTITIES = {
    "&apos;": "'",
    "&quot;": '"',
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&nbsp;": "\u00a0",
    "&hellip;": "…",
    "&mdash;": "—",
    "&ndash;": "–",
    "&lsquo;": "‘",
    "&rsquo;": "’",
    "&ldquo;": "“",
    "&rdquo;": "”",
}

ENTITY_PATTERN = re.compile(
    r"<!\[CDATA\[(.*?)\]\]>|&(?:#\d+|#[xX][0-9a-fA-F]+|[a-zA-Z]+);", re.DOTALL
)
ITEM_PATTERN = re.compile(r"<item\b[^>]*>(.*?)</item>", re.DOTALL | re.IGNORECASE)
FIELD_PATTERNS = {
    name: re.compile(rf"<{name}\b[^>]*>(.*?)</{name}>", re.DOTALL | re.IGNORECASE)
    for name in ("title", "link", "description", "pubDate", "category", "author", "guid")
}


def _replace_entity(match: re.Match) -> str:
    cdata = match.group(1)
    if cdata is not None:
        return cdata

    entity = match.group(0)
    if entity.startswith("&#"):
        try:
            if entity[2] in "xX":
                return chr(int(entity[3:-1], 16))
            return chr(int(entity[2:-1]))
        except (ValueError, OverflowError):
            return entity
    return NAMED_ENTITIES.get(entity, entity)


def decode_html_entities(text: str | None) -> str:
    """Unwrap CDATA sections and decode the supported HTML entities.

    Unknown named entities are left untouched. Text inside CDATA is taken
    literally.
    """
    if not text:
        return ""
    return ENTITY_PATTERN.sub(_replace_entity, text).strip()


def _field(block: str, name: str) -> str | None:
    match = FIELD_PATTERNS[name].search(block)
    if not match:
        return None
    return decode_html_entities(match.group(1))


def parse_feed(xml: str) -> list[FeedItem]:
    """Extract items from RSS-like XML by scanning for <item> blocks.

    Items without a title or a link are skipped. Input that cannot be
    scanned yields an empty list.
    """
    if not isinstance(xml, str) or not xml:
        return []

    items = []
    for match in ITEM_PATTERN.finditer(xml):
        block = match.group(1)
        title = _field(block, "title")
        link = _field(block, "link")
        if not title or not link:
            continue

        guid = _field(block, "guid")
        items.append(
            FeedItem(
                id=guid or link,
                title=title,
                link=link,
                description=_field(block, "description") or "",
                pub_date=_field(block, "pubDate") or None,
                category=_field(block, "category") or None,
                author=_field(block, "author") or None,
            )
        )
    return items


def dedup_by_url(items: Iterable[T], url_of: Callable[[T], str] = lambda item: item.link) -> list[T]:
    """Drop later items whose URL was already seen, keeping first-seen order.

    Items without a URL cannot be compared and are always kept.
    """
    seen = set()
    unique = []
    for item in items:
        url = url_of(item) or ""
        if url:
            if url in seen:
                continue
            seen.add(url)
        unique.append(item)
    return unique


def clean_html_content(content: str | None) -> str:
    """Remove HTML tags from content and normalize whitespace.

    Args:
        content: Raw content that may contain HTML

    Returns:
        Clean text content without HTML tags
    """
    if not content:
        return ""

    if "<" not in content and ">" not in content:
        return " ".join(content.split())

    soup = BeautifulSoup(content, "html.parser")

    for script in soup(["script", "style"]):
        script.decompose()

    text = soup.get_text(separator=" ")
    text = text.replace("<", "").replace(">", "")
    return " ".join(text.split())


class FeedFetcher:
    """Downloads RSS feeds and parses them into FeedItems."""

    def __init__(self, http_client: HttpClient, request_id: str | None = None):
        self.http_client = http_client
        self.logger = create_execution_logger("feed_fetcher", request_id)

    def fetch_feed(self, feed_url: str, source: str = "rss") -> list[FeedItem]:
        """Download and parse a feed.

        Raises:
            UpstreamError: If the download fails
        """
        xml = self.http_client.get_text(
            feed_url,
            headers={"Accept": "application/rss+xml, application/xml, text/xml"},
            source=source,
        )
        items = parse_feed(xml)
        if not items:
            self.logger.warning(
                "Feed contained no usable items", source=source, feed_url=feed_url
            )
        self.logger.log_source_fetch(source, len(items))
        return items

    def fetch_feed_or_empty(self, feed_url: str, source: str = "rss") -> list[FeedItem]:
        """Like fetch_feed, but a failed download yields an empty list."""
        try:
            return self.fetch_feed(feed_url, source)
        except UpstreamError as e:
            self.logger.error(
                f"Failed to fetch feed {feed_url}: {e}", source=source, error=str(e)
            )
            return []
