"""Configuration management for the legislator site worker."""

import os
from dataclasses import dataclass

DEFAULT_MAX_STEPS = 5
MAX_STEPS_LIMIT = 8


@dataclass(frozen=True)
class SourcesConfig:
    """External data sources aggregated by the worker."""

    news_api_url: str = "https://aifferent.juchunko.com/api/news"
    blog_rss_url: str = "https://blog.juchunko.com/rss.xml"
    transpal_rss_url: str = "https://transpal.juchunko.com/rss.xml"
    legislative_api_base: str = "https://ly.govapi.tw/v2"
    legislator_term: int = 11
    legislator_name: str = "葛如鈞"
    request_timeout: int = 15


@dataclass(frozen=True)
class BedrockConfig:
    """Configuration for Amazon Bedrock chat and embeddings."""

    model_id: str = "amazon.nova-micro-v1:0"
    embedding_model_id: str = "amazon.titan-embed-text-v2:0"
    region: str = "us-east-1"
    max_tokens: int = 1000
    temperature: float = 0.6
    max_steps: int = DEFAULT_MAX_STEPS


@dataclass(frozen=True)
class SiteConfig:
    """Public site and content repository locations."""

    site_url: str = "https://juchunko.com"
    content_repo_url: str = (
        "https://github.com/DrJuChunKoO/juchunko.com/raw/refs/heads/astro"
    )
    assistant_persona: str = "國民黨立委葛如鈞（寶博士）網站的 AI 助手"
    name_aliases: str = "葛如鈞=寶博士=Ju-Chun KO"


@dataclass(frozen=True)
class SearchConfig:
    """Vector search backend (PostgREST compatible)."""

    rest_url: str = ""
    secret_name: str = ""
    match_threshold: float = 0.4
    match_count: int = 7


@dataclass(frozen=True)
class CacheConfig:
    """Response cache configuration."""

    backend: str = "memory"
    table_name: str = "legislator-worker-cache"
    max_age: int = 86400
    max_entries: int = 512


@dataclass(frozen=True)
class WorkerConfig:
    """Process-wide configuration, built once per container."""

    sources: SourcesConfig
    bedrock: BedrockConfig
    site: SiteConfig
    search: SearchConfig
    cache: CacheConfig
    aws_region: str = "us-east-1"
    log_level: str = "INFO"
    metrics_enabled: bool = False


class Config:
    """Main configuration manager."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.metrics_enabled = _env_bool("METRICS_ENABLED", False)

    def get_sources_config(self) -> SourcesConfig:
        """Get external source configuration."""
        defaults = SourcesConfig()
        return SourcesConfig(
            news_api_url=os.getenv("NEWS_API_URL", defaults.news_api_url),
            blog_rss_url=os.getenv("BLOG_RSS_URL", defaults.blog_rss_url),
            transpal_rss_url=os.getenv("TRANSPAL_RSS_URL", defaults.transpal_rss_url),
            legislative_api_base=os.getenv(
                "LEGISLATIVE_API_BASE", defaults.legislative_api_base
            ).rstrip("/"),
            legislator_term=_env_int("LEGISLATOR_TERM", defaults.legislator_term),
            legislator_name=os.getenv("LEGISLATOR_NAME", defaults.legislator_name),
            request_timeout=_env_int("REQUEST_TIMEOUT", defaults.request_timeout),
        )

    def get_bedrock_config(self) -> BedrockConfig:
        """Get Bedrock configuration."""
        defaults = BedrockConfig()
        max_steps = _env_int("CHAT_MAX_STEPS", DEFAULT_MAX_STEPS)
        return BedrockConfig(
            model_id=os.getenv("BEDROCK_MODEL_ID", defaults.model_id),
            embedding_model_id=os.getenv(
                "BEDROCK_EMBEDDING_MODEL_ID", defaults.embedding_model_id
            ),
            region=os.getenv("BEDROCK_REGION", self.aws_region),
            max_tokens=_env_int("BEDROCK_MAX_TOKENS", defaults.max_tokens),
            temperature=_env_float("BEDROCK_TEMPERATURE", defaults.temperature),
            max_steps=min(max(max_steps, 1), MAX_STEPS_LIMIT),
        )

    def get_site_config(self) -> SiteConfig:
        """Get site configuration."""
        defaults = SiteConfig()
        return SiteConfig(
            site_url=os.getenv("SITE_URL", defaults.site_url).rstrip("/"),
            content_repo_url=os.getenv(
                "CONTENT_REPO_URL", defaults.content_repo_url
            ).rstrip("/"),
            assistant_persona=os.getenv(
                "ASSISTANT_PERSONA", defaults.assistant_persona
            ),
            name_aliases=os.getenv("ASSISTANT_NAME_ALIASES", defaults.name_aliases),
        )

    def get_search_config(self) -> SearchConfig:
        """Get vector search configuration."""
        defaults = SearchConfig()
        return SearchConfig(
            rest_url=os.getenv("VECTOR_SEARCH_URL", "").rstrip("/"),
            secret_name=os.getenv("VECTOR_SEARCH_SECRET_NAME", ""),
            match_threshold=_env_float(
                "VECTOR_MATCH_THRESHOLD", defaults.match_threshold
            ),
            match_count=_env_int("VECTOR_MATCH_COUNT", defaults.match_count),
        )

    def get_cache_config(self) -> CacheConfig:
        """Get response cache configuration."""
        defaults = CacheConfig()
        backend = os.getenv("CACHE_BACKEND", defaults.backend).lower()
        if backend not in ("memory", "dynamodb", "none"):
            raise ValueError(f"Unsupported CACHE_BACKEND: {backend}")
        return CacheConfig(
            backend=backend,
            table_name=os.getenv("CACHE_TABLE", defaults.table_name),
            max_age=_env_int("CACHE_MAX_AGE", defaults.max_age),
            max_entries=max(_env_int("CACHE_MAX_ENTRIES", defaults.max_entries), 1),
        )

    def load(self) -> WorkerConfig:
        """Build the immutable worker configuration."""
        return WorkerConfig(
            sources=self.get_sources_config(),
            bedrock=self.get_bedrock_config(),
            site=self.get_site_config(),
            search=self.get_search_config(),
            cache=self.get_cache_config(),
            aws_region=self.aws_region,
            log_level=self.log_level,
            metrics_enabled=self.metrics_enabled,
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an integer: {value}") from e


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be a number: {value}") from e


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
