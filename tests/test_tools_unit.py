"""Unit tests for the chat tool registry."""

from unittest.mock import Mock

import pytest

from legislator_worker.errors import ToolInputError, UnknownToolError, UpstreamError
from legislator_worker.models import NewsItem, NewsPage
from legislator_worker.site_search import ContentRepository
from legislator_worker.tools import SearchNewsInput, ToolContext, ToolName, ToolRegistry


def make_registry(filename="/zh-TW/docs/ai-act", site_search=None):
    news_client = Mock()
    content_repository = Mock()
    content_repository.fetch_page.return_value = "# 人工智慧基本法"
    context = ToolContext(
        filename=filename,
        site_url="https://site.example",
        news_client=news_client,
        content_repository=content_repository,
        site_search=site_search,
    )
    return ToolRegistry(context), news_client, content_repository


class TestToolRegistryUnit:
    """Unit tests for ToolRegistry."""

    def test_tool_config_lists_every_tool(self):
        registry, _, _ = make_registry()

        config = registry.tool_config()

        names = [tool["toolSpec"]["name"] for tool in config["tools"]]
        assert names == [name.value for name in ToolName]
        search = next(t["toolSpec"] for t in config["tools"] if t["toolSpec"]["name"] == "searchNews")
        assert search["inputSchema"]["json"]["required"] == ["q"]

    def test_unknown_tool(self):
        registry, _, _ = make_registry()
        with pytest.raises(UnknownToolError):
            registry.execute("deleteEverything", {})

    def test_validate_rejects_bad_input(self):
        registry, _, _ = make_registry()
        spec = registry.resolve("searchNews")

        with pytest.raises(ToolInputError):
            registry.validate(spec, {"q": ""})
        with pytest.raises(ToolInputError):
            registry.validate(spec, {"q": "AI", "pageSize": 0})
        with pytest.raises(ToolInputError):
            registry.validate(spec, {"q": "AI", "extra": 1})

        assert registry.validate(spec, {"q": "AI"}) == SearchNewsInput(q="AI")

    def test_invalid_input_becomes_error_result(self):
        registry, news_client, _ = make_registry()

        result = registry.execute("searchNews", {})

        assert result.ok is False
        assert result.content.startswith("工具參數錯誤")
        news_client.search.assert_not_called()

    def test_view_page(self):
        registry, _, content_repository = make_registry()

        result = registry.execute("viewPage", None)

        assert result.ok
        assert result.content == "base: https://site.example/\n目前頁面內容：\n# 人工智慧基本法"
        content_repository.fetch_page.assert_called_once_with("/zh-TW/docs/ai-act")

    def test_view_page_unresolvable_route(self):
        registry, _, content_repository = make_registry(filename="/")
        content_repository.fetch_page.return_value = None

        result = registry.execute("viewPage", {})

        assert "無效的路由格式" in result.content

    def test_search_news(self):
        registry, news_client, _ = make_registry()
        news_client.search.return_value = NewsPage(
            items=[NewsItem(url="https://n/1", title="AI 新聞", source="中央社", time="2024-01-01")],
            total_pages=4,
        )

        result = registry.execute("searchNews", {"q": "AI", "page": 2})

        news_client.search.assert_called_once_with("AI", page=2, page_size=20)
        assert result.content == (
            "搜尋新聞結果（query=AI，page=2，pageSize=20，totalPages=4）:\n"
            "1. AI 新聞 (中央社) - 2024-01-01 - https://n/1"
        )

    def test_search_news_clamps_page_size(self):
        """Oversized page sizes are capped rather than rejected."""
        registry, news_client, _ = make_registry()
        news_client.search.return_value = NewsPage(items=[NewsItem(url="https://n/1", title="t")])

        result = registry.execute("searchNews", {"q": "AI", "pageSize": 100})

        assert result.ok
        news_client.search.assert_called_once_with("AI", page=1, page_size=50)
        assert "pageSize=50" in result.content

    def test_latest_news_clamps_count(self):
        registry, news_client, _ = make_registry()
        news_client.latest.return_value = NewsPage(items=[NewsItem(url="https://n/1", title="t")])

        result = registry.execute("latestNews", {"count": 500})

        assert result.ok
        news_client.latest.assert_called_once_with(50)

    def test_search_news_empty(self):
        registry, news_client, _ = make_registry()
        news_client.search.return_value = NewsPage(items=[])
        assert registry.execute("searchNews", {"q": "nothing"}).content == "搜尋結果為空。"

    def test_latest_news(self):
        registry, news_client, _ = make_registry()
        news_client.latest.return_value = NewsPage(items=[NewsItem(url="https://n/1", title="t")])

        result = registry.execute("latestNews", {})

        news_client.latest.assert_called_once_with(10)
        assert result.content.startswith("最新新聞（count=10）:\n1. t")

    def test_upstream_failure_becomes_error_result(self):
        registry, news_client, _ = make_registry()
        news_client.latest.side_effect = UpstreamError("news_api", "HTTP 503")

        result = registry.execute("latestNews", {"count": 3})

        assert result.ok is False
        assert result.content.startswith("取得最新新聞失敗")

    def test_semantic_site_search(self):
        site_search = Mock()
        site_search.search_site.return_value = [
            {"title": "法案", "url": "/zh-TW/docs/1", "content": "內容"},
        ]
        registry, _, _ = make_registry(site_search=site_search)

        result = registry.execute("semanticSiteSearch", {"keyword": "AI", "language": "zh-TW"})

        site_search.search_site.assert_called_once_with("AI", "zh-TW")
        assert "1. 法案 - https://site.example/zh-TW/docs/1\n內容" in result.content

    def test_semantic_site_search_unavailable(self):
        registry, _, _ = make_registry(site_search=None)
        result = registry.execute("semanticSiteSearch", {"keyword": "AI", "language": "en"})
        assert result.ok is False

    def test_get_news_by_url(self):
        site_search = Mock()
        site_search.get_news_by_url.return_value = {"title": "T", "source": "S", "url": "https://n/1"}
        registry, _, _ = make_registry(site_search=site_search)

        result = registry.execute("getNewsByUrl", {"url": "https://n/1"})

        assert "標題：T" in result.content
        assert "來源：S" in result.content

        site_search.get_news_by_url.return_value = None
        assert "找不到" in registry.execute("getNewsByUrl", {"url": "https://n/2"}).content


class TestContentRepositoryUnit:
    """Unit tests for ContentRepository path resolution."""

    def test_resolve_path(self):
        assert ContentRepository.resolve_path("/zh-TW/docs/ai/act") == "src/content/docs/zh-TW/ai/act.mdx"
        assert ContentRepository.resolve_path("/en/blog/post/") == "src/content/blog/en/post.mdx"
        assert ContentRepository.resolve_path("/zh-TW/docs") is None
        assert ContentRepository.resolve_path("") is None
