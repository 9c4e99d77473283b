"""Tools the chat model may call, with schema-validated inputs."""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ToolInputError, UnknownToolError, UpstreamError
from .logging_config import create_execution_logger
from .models import LANG_ZH
from .news import NewsClient, format_news_list
from .site_search import ContentRepository, SiteSearchClient

MAX_PAGE_SIZE = 50


class ToolName(str, Enum):
    VIEW_PAGE = "viewPage"
    SEARCH_NEWS = "searchNews"
    LATEST_NEWS = "latestNews"
    SEMANTIC_SITE_SEARCH = "semanticSiteSearch"
    GET_NEWS_BY_URL = "getNewsByUrl"


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid")


class ViewPageInput(ToolInput):
    pass


class SearchNewsInput(ToolInput):
    q: str = Field(min_length=1, description="Search keywords")
    page: int | None = Field(default=None, ge=1)
    pageSize: int | None = Field(default=None, ge=1, description=f"Results per page, at most {MAX_PAGE_SIZE}")
    lang: Literal["en", "zh-TW"] | None = None


class LatestNewsInput(ToolInput):
    count: int | None = Field(default=None, ge=1, description=f"Number of items, at most {MAX_PAGE_SIZE}")
    lang: Literal["en", "zh-TW"] | None = None


class SemanticSiteSearchInput(ToolInput):
    keyword: str = Field(min_length=1, description="The keyword to search for")
    language: Literal["en", "zh-TW"] = Field(description="Language of the site content")


class GetNewsByUrlInput(ToolInput):
    url: str = Field(min_length=1, description="URL of a news article")


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    input_model: type[ToolInput]
    handler: Callable[[Any], str]


@dataclass
class ToolResult:
    content: str
    ok: bool = True


@dataclass(frozen=True)
class ToolContext:
    """Per-request collaborators the tools call into."""

    filename: str
    site_url: str
    news_client: NewsClient
    content_repository: ContentRepository
    site_search: SiteSearchClient | None = None


class ToolRegistry:
    """Closed set of chat tools keyed by ToolName."""

    def __init__(self, context: ToolContext, request_id: str | None = None):
        self.context = context
        self.logger = create_execution_logger("chat_tools", request_id)
        self._tools = {
            spec.name: spec
            for spec in (
                ToolSpec(
                    ToolName.VIEW_PAGE,
                    "Get the current page content",
                    ViewPageInput,
                    self.view_page,
                ),
                ToolSpec(
                    ToolName.SEARCH_NEWS,
                    "Search news by query. Returns a readable summary with urls and sources.",
                    SearchNewsInput,
                    self.search_news,
                ),
                ToolSpec(
                    ToolName.LATEST_NEWS,
                    "Get latest news items; pass count (pageSize) to control how many are returned.",
                    LatestNewsInput,
                    self.latest_news,
                ),
                ToolSpec(
                    ToolName.SEMANTIC_SITE_SEARCH,
                    "Search the website content by meaning. Returns matching sections with urls.",
                    SemanticSiteSearchInput,
                    self.semantic_site_search,
                ),
                ToolSpec(
                    ToolName.GET_NEWS_BY_URL,
                    "Get the stored details (title, source, time, summary) of one news article by url.",
                    GetNewsByUrlInput,
                    self.get_news_by_url,
                ),
            )
        }

    @property
    def names(self) -> list[str]:
        return [name.value for name in self._tools]

    def tool_config(self) -> dict:
        """Tool definitions in Bedrock Converse toolConfig format."""
        return {
            "tools": [
                {
                    "toolSpec": {
                        "name": spec.name.value,
                        "description": spec.description,
                        "inputSchema": {"json": spec.input_model.model_json_schema()},
                    }
                }
                for spec in self._tools.values()
            ]
        }

    def resolve(self, name: str) -> ToolSpec:
        """Look up a tool by the name the model used.

        Raises:
            UnknownToolError: If the name is not a registered tool
        """
        try:
            return self._tools[ToolName(name)]
        except ValueError as e:
            raise UnknownToolError(name) from e

    def validate(self, spec: ToolSpec, raw_input: Any) -> ToolInput:
        try:
            return spec.input_model.model_validate(raw_input or {})
        except ValidationError as e:
            raise ToolInputError(spec.name.value, str(e)) from e

    def execute(self, name: str, raw_input: Any) -> ToolResult:
        """Run a tool and return its result text.

        Invalid input and upstream failures come back as error results so the
        model can respond to them.

        Raises:
            UnknownToolError: If the name is not a registered tool
        """
        spec = self.resolve(name)
        try:
            arguments = self.validate(spec, raw_input)
        except ToolInputError as e:
            self.logger.log_tool_call(spec.name.value, success=False, error=str(e))
            return ToolResult(f"工具參數錯誤：{e}", ok=False)

        try:
            content = spec.handler(arguments)
        except UpstreamError as e:
            self.logger.log_tool_call(spec.name.value, success=False, error=str(e))
            return ToolResult(self._failure_message(spec.name, e), ok=False)
        except Exception as e:
            self.logger.exception(f"Tool {spec.name.value} crashed: {e}", tool_name=spec.name.value)
            return ToolResult(self._failure_message(spec.name, e), ok=False)

        self.logger.log_tool_call(spec.name.value, success=True, result_length=len(content))
        return ToolResult(content)

    @staticmethod
    def _failure_message(name: ToolName, error: Exception) -> str:
        prefixes = {
            ToolName.VIEW_PAGE: "無法讀取目前頁面內容",
            ToolName.SEARCH_NEWS: "搜尋新聞失敗",
            ToolName.LATEST_NEWS: "取得最新新聞失敗",
            ToolName.SEMANTIC_SITE_SEARCH: "網站內容搜尋失敗",
            ToolName.GET_NEWS_BY_URL: "取得新聞內容失敗",
        }
        return f"{prefixes[name]}：{error}"

    def _page_header(self) -> str:
        return f"base: {self.context.site_url}/\n目前頁面內容：\n"

    def view_page(self, arguments: ViewPageInput) -> str:
        try:
            content = self.context.content_repository.fetch_page(self.context.filename)
        except UpstreamError as e:
            return f"{self._page_header()}無法讀取目前頁面內容：{e}"
        if content is None:
            return f"{self._page_header()}無效的路由格式，無法解析檔案路徑。"
        return f"{self._page_header()}{content}"

    def search_news(self, arguments: SearchNewsInput) -> str:
        page = arguments.page or 1
        page_size = min(arguments.pageSize or 20, MAX_PAGE_SIZE)
        result = self.context.news_client.search(arguments.q, page=page, page_size=page_size)
        if not result.items:
            return "搜尋結果為空。"
        listing = format_news_list(result.items, arguments.lang or LANG_ZH, limit=page_size)
        return (
            f"搜尋新聞結果（query={arguments.q}，page={page}，pageSize={page_size}，"
            f"totalPages={result.total_pages}）:\n{listing}"
        )

    def latest_news(self, arguments: LatestNewsInput) -> str:
        count = min(arguments.count or 10, MAX_PAGE_SIZE)
        result = self.context.news_client.latest(count)
        if not result.items:
            return "目前沒有最新新聞。"
        listing = format_news_list(result.items, arguments.lang or LANG_ZH, limit=count)
        return f"最新新聞（count={count}）:\n{listing}"

    def semantic_site_search(self, arguments: SemanticSiteSearchInput) -> str:
        if self.context.site_search is None:
            raise UpstreamError("vector_search", "site search is not available")
        rows = self.context.site_search.search_site(arguments.keyword, arguments.language)
        if not rows:
            return "沒有找到相關的網站內容。"

        lines = []
        for index, row in enumerate(rows, start=1):
            title = row.get("title") or "(no title)"
            url = row.get("url") or ""
            if url.startswith("/"):
                url = f"{self.context.site_url}{url}"
            content = (row.get("content") or "").strip()
            lines.append(f"{index}. {title} - {url}\n{content}".rstrip())
        return f"網站內容搜尋結果（keyword={arguments.keyword}）:\n" + "\n\n".join(lines)

    def get_news_by_url(self, arguments: GetNewsByUrlInput) -> str:
        if self.context.site_search is None:
            raise UpstreamError("news_store", "news lookup is not available")
        record = self.context.site_search.get_news_by_url(arguments.url)
        if record is None:
            return f"找不到這則新聞：{arguments.url}"
        return "\n".join(
            [
                f"標題：{record.get('title') or ''}",
                f"來源：{record.get('source') or '未知來源'}",
                f"時間：{record.get('time') or ''}",
                f"網址：{record.get('url') or arguments.url}",
                f"摘要：{record.get('summary') or ''}",
            ]
        )
