"""Homepage card aggregation across news, blog, transcripts and legislative activity."""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from .activity import describe_details
from .config import SourcesConfig
from .dates import time_ago
from .legislator import LegislatorActivityService
from .logging_config import create_execution_logger
from .models import (
    ICON_BLOG,
    ICON_NEWSPAPER,
    ICON_TRANSPAL,
    LANG_EN,
    LANG_ZH,
    CardItem,
    FeedItem,
    IndexCards,
)
from .news import NewsClient
from .rss import FeedFetcher, clean_html_content, decode_html_entities

CARDS_PER_SECTION = 3


def is_post_in_language(item: FeedItem, lang: str) -> bool:
    """Blog posts under /en/ are English; /zh/ or unmarked posts are Chinese."""
    link = item.link or ""
    if lang == LANG_EN:
        return "/en/" in link
    return "/zh/" in link or "/en/" not in link


class IndexCardsAggregator:
    """Builds the homepage card payload.

    Each source runs in its own pipeline; a failure sets that source's error
    flag and leaves the other sections untouched.
    """

    def __init__(
        self,
        news_client: NewsClient,
        feed_fetcher: FeedFetcher,
        activity_service: LegislatorActivityService,
        sources: SourcesConfig,
        request_id: str | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.news_client = news_client
        self.feed_fetcher = feed_fetcher
        self.activity_service = activity_service
        self.sources = sources
        self.now = now
        self.logger = create_execution_logger("index_cards", request_id)

    def _time_ago(self, value, lang: str) -> str:
        return time_ago(value, lang, now=self.now() if self.now else None)

    def get_index_cards(self, lang: str = LANG_ZH) -> IndexCards:
        if lang not in (LANG_EN, LANG_ZH):
            lang = LANG_ZH

        pipelines = {
            "news": self.news_cards,
            "blog": self.blog_cards,
            "transpal": self.transpal_cards,
            "legislator": self.legislator_cards,
        }
        result = IndexCards()
        with ThreadPoolExecutor(max_workers=len(pipelines)) as executor:
            futures = {name: executor.submit(build, lang) for name, build in pipelines.items()}
            for name, future in futures.items():
                try:
                    cards, failed = future.result()
                except Exception as e:
                    self.logger.exception(
                        f"Failed to build {name} cards: {e}", source=name, error=str(e)
                    )
                    cards, failed = [], True

                setattr(result, f"{name}Cards", cards)
                setattr(result, f"{name}FetchError", failed)
                self.logger.log_source_fetch(name, len(cards), success=not failed)

        return result

    def news_cards(self, lang: str) -> tuple[list[CardItem], bool]:
        page = self.news_client.fetch_page()
        cards = []
        for item in page.items[:CARDS_PER_SECTION]:
            summary = item.summary_en if lang == LANG_EN else item.summary
            relative = self._time_ago(item.time, lang)
            cards.append(
                CardItem(
                    title=decode_html_entities(item.display_title(lang)),
                    description=clean_html_content(summary or ""),
                    date=f"{item.source}‧{relative}" if item.source else relative,
                    href=item.url,
                    icon=ICON_NEWSPAPER,
                )
            )
        return cards, False

    def _feed_cards(
        self, feed_url: str, source: str, icon: str, lang: str, language_filter: bool
    ) -> tuple[list[CardItem], bool]:
        items = self.feed_fetcher.fetch_feed_or_empty(feed_url, source)
        if not items:
            # Failed download or empty parse: the feed is unusable, not empty
            return [], True
        if language_filter:
            items = [item for item in items if is_post_in_language(item, lang)]

        cards = [
            CardItem(
                title=item.title,
                description=clean_html_content(item.description),
                date=self._time_ago(item.pub_date, lang) if item.pub_date else "",
                href=item.link or "/",
                icon=icon,
            )
            for item in items[:CARDS_PER_SECTION]
        ]
        return cards, False

    def blog_cards(self, lang: str) -> tuple[list[CardItem], bool]:
        return self._feed_cards(self.sources.blog_rss_url, "blog_rss", ICON_BLOG, lang, True)

    def transpal_cards(self, lang: str) -> tuple[list[CardItem], bool]:
        return self._feed_cards(
            self.sources.transpal_rss_url, "transpal_rss", ICON_TRANSPAL, lang, False
        )

    def legislator_cards(self, lang: str) -> tuple[list[CardItem], bool]:
        fetch = self.activity_service.get_activities(CARDS_PER_SECTION, lang)
        cards = [
            CardItem(
                title=activity.title,
                description=describe_details(activity, lang),
                date=self._time_ago(activity.date, lang) if activity.date else "",
                href=activity.url or f"/{lang}/activities/{activity.id}",
                icon=activity.type,
            )
            for activity in fetch.activities[:CARDS_PER_SECTION]
        ]
        return cards, bool(fetch.failed_types)
