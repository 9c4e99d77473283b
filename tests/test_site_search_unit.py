"""Unit tests for vector search and stored news lookups."""

import io
import json
from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from legislator_worker.config import SearchConfig
from legislator_worker.errors import UpstreamError
from legislator_worker.site_search import SiteSearchClient

SEARCH = SearchConfig(rest_url="https://db.example/rest/v1", match_threshold=0.5, match_count=4)


def make_client(config=SEARCH, api_key="key"):
    http_client = Mock()
    bedrock = Mock()
    bedrock.invoke_model.return_value = {"body": io.BytesIO(json.dumps({"embedding": [0.1, 0.2]}).encode())}
    client = SiteSearchClient(http_client, bedrock, config, "amazon.titan-embed-text-v2:0", api_key=api_key)
    return client, http_client, bedrock


class TestSiteSearchClientUnit:
    """Unit tests for SiteSearchClient."""

    def test_search_site(self):
        client, http_client, bedrock = make_client()
        http_client.post_json.return_value = [{"title": "A", "url": "/a"}, "junk"]

        rows = client.search_site("AI", "en")

        assert rows == [{"title": "A", "url": "/a"}]
        args, kwargs = http_client.post_json.call_args
        assert args[0] == "https://db.example/rest/v1/rpc/match_site_content"
        assert args[1] == {
            "query_embedding": [0.1, 0.2],
            "match_threshold": 0.5,
            "match_count": 4,
            "filter_language": "en",
        }
        assert kwargs["headers"] == {"apikey": "key", "Authorization": "Bearer key"}
        assert json.loads(bedrock.invoke_model.call_args.kwargs["body"]) == {"inputText": "AI"}

    def test_get_news_by_url(self):
        client, http_client, _ = make_client(api_key="")
        http_client.get_json.return_value = [{"title": "T", "url": "https://n/1"}]

        assert client.get_news_by_url("https://n/1") == {"title": "T", "url": "https://n/1"}
        kwargs = http_client.get_json.call_args.kwargs
        assert kwargs["params"]["url"] == "eq.https://n/1"
        assert kwargs["headers"] == {}

        http_client.get_json.return_value = []
        assert client.get_news_by_url("https://n/2") is None

    def test_backend_not_configured(self):
        client, _, _ = make_client(config=SearchConfig())
        with pytest.raises(UpstreamError):
            client.search_site("AI", "zh-TW")

    def test_embedding_failure(self):
        client, _, bedrock = make_client()
        bedrock.invoke_model.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "InvokeModel")
        with pytest.raises(UpstreamError, match="bedrock_embeddings"):
            client.embed("AI")

    def test_embedding_missing(self):
        client, _, bedrock = make_client()
        bedrock.invoke_model.return_value = {"body": io.BytesIO(b"{}")}
        with pytest.raises(UpstreamError):
            client.embed("AI")
