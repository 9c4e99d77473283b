"""Client for the news search API."""

from .errors import UpstreamError
from .http_client import HttpClient
from .logging_config import create_execution_logger
from .models import LANG_ZH, NewsItem, NewsPage
from .rss import dedup_by_url

SOURCE_NAME = "news_api"


class NewsClient:
    """Queries the news API ({success, data, totalPages} envelopes)."""

    def __init__(self, http_client: HttpClient, api_url: str, request_id: str | None = None):
        self.http_client = http_client
        self.api_url = api_url
        self.logger = create_execution_logger("news_client", request_id)

    def fetch_page(
        self, query: str | None = None, page: int | None = None, page_size: int | None = None
    ) -> NewsPage:
        """Fetch one page of news, de-duplicated by URL.

        Raises:
            UpstreamError: On transport failure or an unsuccessful envelope
        """
        params = {}
        if page is not None:
            params["page"] = page
        if page_size is not None:
            params["pageSize"] = page_size
        if query:
            params["q"] = query

        payload = self.http_client.get_json(self.api_url, params=params or None, source=SOURCE_NAME)
        if not isinstance(payload, dict):
            raise UpstreamError(SOURCE_NAME, "expected a JSON object")
        if payload.get("success") is False:
            raise UpstreamError(SOURCE_NAME, str(payload.get("message") or "Failed to fetch news"))

        data = payload.get("data")
        if not isinstance(data, list):
            raise UpstreamError(SOURCE_NAME, "'data' is not a list")

        items = dedup_by_url(
            (NewsItem.from_dict(entry) for entry in data if isinstance(entry, dict)),
            url_of=lambda item: item.url,
        )
        total_pages = payload.get("totalPages")
        self.logger.log_source_fetch(SOURCE_NAME, len(items))
        return NewsPage(items=items, total_pages=total_pages if isinstance(total_pages, int) else None)

    def search(self, query: str, page: int = 1, page_size: int = 20) -> NewsPage:
        return self.fetch_page(query=query, page=page, page_size=page_size)

    def latest(self, count: int = 10) -> NewsPage:
        return self.fetch_page(page=1, page_size=count)


def format_news_list(items: list[NewsItem], lang: str = LANG_ZH, limit: int | None = None) -> str:
    """Numbered "title (source) - time - url" lines for the model."""
    lines = []
    for index, item in enumerate(items[:limit] if limit else items, start=1):
        title = item.display_title(lang) or "(no title)"
        source = item.source or "未知來源"
        lines.append(f"{index}. {title} ({source}) - {item.time} - {item.url}")
    return "\n".join(lines)
