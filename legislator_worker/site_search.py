"""Site content lookups: raw page files and vector similarity search."""

import json
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError

from .config import SearchConfig, SiteConfig
from .errors import UpstreamError
from .http_client import HttpClient
from .logging_config import create_execution_logger

NEWS_COLUMNS = "title,url,summary,time,source"


class ContentRepository:
    """Fetches the MDX source of a site page from the content repository."""

    def __init__(self, http_client: HttpClient, config: SiteConfig):
        self.http_client = http_client
        self.config = config

    @staticmethod
    def resolve_path(filename: str) -> str | None:
        """Map a route /{lang}/{category}/{slug...} to its content file path.

        Returns None for routes with fewer than three segments.
        """
        parts = [part for part in (filename or "").strip("/").split("/") if part]
        if len(parts) < 3:
            return None
        lang, category, *slug = parts
        return f"src/content/{category}/{lang}/{'/'.join(slug)}.mdx"

    def fetch_page(self, filename: str) -> str | None:
        """Raw page source, or None when the route cannot be resolved.

        Raises:
            UpstreamError: If the file cannot be downloaded
        """
        path = self.resolve_path(filename)
        if path is None:
            return None
        return self.http_client.get_text(
            f"{self.config.content_repo_url}/{path}", source="content_repo"
        )


class SiteSearchClient:
    """Semantic search over site content and stored news (PostgREST backend)."""

    def __init__(
        self,
        http_client: HttpClient,
        bedrock_client: Any,
        config: SearchConfig,
        embedding_model_id: str,
        api_key: str = "",
        request_id: str | None = None,
    ):
        self.http_client = http_client
        self.bedrock_client = bedrock_client
        self.config = config
        self.embedding_model_id = embedding_model_id
        self.api_key = api_key
        self.logger = create_execution_logger("site_search", request_id)

    def _require_backend(self, source: str) -> None:
        if not self.config.rest_url:
            raise UpstreamError(source, "vector search backend is not configured")

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def embed(self, text: str) -> list[float]:
        """Embed text with the configured Bedrock embedding model.

        Raises:
            UpstreamError: If Bedrock fails or returns no embedding
        """
        if self.bedrock_client is None:
            raise UpstreamError("bedrock_embeddings", "Bedrock client not available")
        try:
            response = self.bedrock_client.invoke_model(
                modelId=self.embedding_model_id,
                body=json.dumps({"inputText": text}),
                contentType="application/json",
                accept="application/json",
            )
            body = json.loads(response["body"].read())
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"Bedrock embedding failed: {e}", error=str(e))
            raise UpstreamError("bedrock_embeddings", str(e)) from e
        except (KeyError, ValueError) as e:
            raise UpstreamError("bedrock_embeddings", f"malformed response: {e}") from e

        embedding = body.get("embedding") if isinstance(body, dict) else None
        if not isinstance(embedding, list) or not embedding:
            raise UpstreamError("bedrock_embeddings", "response contained no embedding")
        return embedding

    def search_site(self, keyword: str, language: str) -> list[dict]:
        """Site sections most similar to the keyword, best match first.

        Raises:
            UpstreamError: If embedding or the search RPC fails
        """
        self._require_backend("vector_search")
        rows = self.http_client.post_json(
            f"{self.config.rest_url}/rpc/match_site_content",
            {
                "query_embedding": self.embed(keyword),
                "match_threshold": self.config.match_threshold,
                "match_count": self.config.match_count,
                "filter_language": language,
            },
            headers=self._headers(),
            source="vector_search",
        )
        if not isinstance(rows, list):
            raise UpstreamError("vector_search", "expected a list of matches")
        self.logger.log_source_fetch("vector_search", len(rows))
        return [row for row in rows if isinstance(row, dict)]

    def get_news_by_url(self, url: str) -> dict | None:
        """The stored news record for a URL, or None if there is none.

        Raises:
            UpstreamError: If the lookup fails
        """
        self._require_backend("news_store")
        rows = self.http_client.get_json(
            f"{self.config.rest_url}/news",
            params={"select": NEWS_COLUMNS, "url": f"eq.{url}", "limit": 1},
            headers=self._headers(),
            source="news_store",
        )
        if not isinstance(rows, list):
            raise UpstreamError("news_store", "expected a list of rows")
        return rows[0] if rows and isinstance(rows[0], dict) else None
