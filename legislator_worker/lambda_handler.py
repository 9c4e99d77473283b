"""Lambda handler serving the worker's JSON and chat endpoints."""

import base64
import functools
import json
import os
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from .cache import (
    CachedResponse,
    DynamoDBResponseCache,
    InMemoryResponseCache,
    ResponseCache,
    pull_through,
)
from .chat import ChatGateway, build_system_prompt, sse_events, to_bedrock_messages
from .config import Config, WorkerConfig
from .errors import UpstreamError
from .http_client import HttpClient
from .index_cards import IndexCardsAggregator
from .legislator import LegislativeApi, LegislatorActivityService
from .logging_config import create_execution_logger, setup_structured_logging
from .models import LANG_ZH, LANGUAGES
from .news import NewsClient
from .rss import FeedFetcher
from .site_search import ContentRepository, SiteSearchClient
from .tools import ToolContext, ToolRegistry

setup_structured_logging(os.getenv("LOG_LEVEL", "INFO"))

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
PARTIAL_MAX_AGE = 300
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class WorkerServices:
    """Long-lived collaborators, built once per container."""

    config: WorkerConfig
    cache: ResponseCache | None
    bedrock_client: Any
    search_api_key: str = ""
    search_enabled: bool = True


@dataclass
class Request:
    method: str
    path: str
    url: str
    query: dict[str, str]
    body: str | None


def build_services(config: WorkerConfig, request_id: str | None = None) -> WorkerServices:
    """Construct the process-wide services from configuration."""
    logger = create_execution_logger("main", request_id)

    cache: ResponseCache | None = None
    if config.cache.backend == "memory":
        cache = InMemoryResponseCache(max_entries=config.cache.max_entries)
    elif config.cache.backend == "dynamodb":
        cache = DynamoDBResponseCache(config.cache.table_name, config.aws_region, request_id)

    try:
        bedrock_client = boto3.client("bedrock-runtime", region_name=config.bedrock.region)
        logger.info("Initialized Bedrock client", region=config.bedrock.region)
    except (NoCredentialsError, ClientError, BotoCoreError) as e:
        logger.warning(f"Failed to initialize Bedrock client: {e}", error=str(e))
        bedrock_client = None

    search_api_key = os.getenv("VECTOR_SEARCH_API_KEY", "")
    search_enabled = True
    if config.search.secret_name:
        try:
            search_api_key = get_secret_value(
                config.search.secret_name, config.aws_region, request_id
            )
        except (RuntimeError, ValueError, BotoCoreError) as e:
            # Only the site search tools need the key
            logger.error(f"Vector search key unavailable: {e}", error=str(e))
            search_api_key = ""
            search_enabled = False

    return WorkerServices(
        config=config,
        cache=cache,
        bedrock_client=bedrock_client,
        search_api_key=search_api_key,
        search_enabled=search_enabled,
    )


@functools.lru_cache(maxsize=1)
def get_services() -> WorkerServices:
    return build_services(Config().load())


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    Entry point for HTTP API / Function URL events (payload format 2.0).

    Args:
        event: Lambda event data
        context: Lambda context object

    Returns:
        Lambda proxy response dictionary
    """
    request_id = getattr(context, "aws_request_id", None) or (
        f"req_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    )
    try:
        services = get_services()
    except Exception as e:
        logger = create_execution_logger("main", request_id)
        logger.exception(f"Failed to initialize worker: {e}")
        return to_lambda_response(
            json_response(500, {"error": "Internal server error", "message": "Worker failed to start"})
        )
    return handle_event(event, services, request_id)


def parse_request(event: dict[str, Any]) -> Request:
    http = event.get("requestContext", {}).get("http", {})
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    raw_path = event.get("rawPath") or event.get("path") or "/"
    path = raw_path.rstrip("/") or "/"

    headers = {name.lower(): value for name, value in (event.get("headers") or {}).items()}
    host = headers.get("host") or event.get("requestContext", {}).get("domainName", "localhost")
    raw_query = event.get("rawQueryString") or ""
    url = f"https://{host}{raw_path}" + (f"?{raw_query}" if raw_query else "")

    body = event.get("body")
    if body is not None and event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")

    return Request(
        method=method,
        path=path,
        url=url,
        query=event.get("queryStringParameters") or {},
        body=body,
    )


def json_response(
    status_code: int, payload: Any, cache_control: str | None = None
) -> CachedResponse:
    headers = {"Content-Type": "application/json; charset=utf-8", **CORS_HEADERS}
    if cache_control:
        headers["Cache-Control"] = cache_control
    return CachedResponse(
        status_code=status_code,
        body=json.dumps(payload, ensure_ascii=False),
        headers=headers,
    )


def text_response(status_code: int, text: str) -> CachedResponse:
    return CachedResponse(
        status_code=status_code,
        body=text,
        headers={"Content-Type": "text/plain; charset=utf-8", **CORS_HEADERS},
    )


def to_lambda_response(response: CachedResponse) -> dict[str, Any]:
    return {
        "statusCode": response.status_code,
        "headers": response.headers,
        "body": response.body,
        "isBase64Encoded": False,
    }


def positive_int(value: str | None, default: int, maximum: int | None = None) -> int:
    try:
        number = int(value) if value is not None else default
    except ValueError:
        return default
    if number < 1:
        return default
    return min(number, maximum) if maximum else number


def build_http_client(services: WorkerServices, request_id: str) -> HttpClient:
    return HttpClient(timeout=services.config.sources.request_timeout, request_id=request_id)


def build_activity_service(http_client: HttpClient, services: WorkerServices, request_id: str):
    api = LegislativeApi(http_client, services.config.sources, request_id)
    return LegislatorActivityService(api, request_id)


def build_index_cards_aggregator(services: WorkerServices, request_id: str) -> IndexCardsAggregator:
    http_client = build_http_client(services, request_id)
    sources = services.config.sources
    return IndexCardsAggregator(
        news_client=NewsClient(http_client, sources.news_api_url, request_id),
        feed_fetcher=FeedFetcher(http_client, request_id),
        activity_service=build_activity_service(http_client, services, request_id),
        sources=sources,
        request_id=request_id,
    )


def handle_index_cards(request: Request, services: WorkerServices, request_id: str, metrics: dict) -> CachedResponse:
    logger = create_execution_logger("index_cards", request_id)
    lang = request.query.get("lang")
    if lang not in LANGUAGES:
        lang = LANG_ZH

    def produce() -> CachedResponse:
        metrics["cache_misses"] += 1
        try:
            cards = build_index_cards_aggregator(services, request_id).get_index_cards(lang)
        except Exception as e:
            logger.exception(f"Failed to fetch index cards: {e}")
            return json_response(
                500, {"error": "Failed to fetch data", "message": "Internal error while building index cards"}
            )

        payload = cards.to_dict()
        metrics["source_failures"] += sum(
            1 for key, value in payload.items() if key.endswith("FetchError") and value
        )
        return json_response(200, payload, f"public, max-age={services.config.cache.max_age}")

    return pull_through(services.cache, request.url, produce, request_id)


def handle_legislator_activity(
    request: Request, services: WorkerServices, request_id: str, metrics: dict
) -> CachedResponse:
    logger = create_execution_logger("legislator_activity", request_id)
    page = positive_int(request.query.get("page"), 1)
    page_size = positive_int(request.query.get("pageSize"), DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE)
    lang = request.query.get("lang")
    if lang not in LANGUAGES:
        lang = LANG_ZH

    def produce() -> CachedResponse:
        metrics["cache_misses"] += 1
        service = build_activity_service(build_http_client(services, request_id), services, request_id)
        try:
            envelope = service.get_legislator_activity(page, page_size, lang)
        except UpstreamError as e:
            logger.error(f"Failed to fetch legislator activity: {e}", source=e.source)
            metrics["source_failures"] += 1
            return json_response(500, {"success": False, "message": "Legislative data is unavailable"})
        except Exception as e:
            logger.exception(f"Failed to build legislator activity: {e}")
            return json_response(500, {"success": False, "message": "Internal error"})

        max_age = PARTIAL_MAX_AGE if envelope["partial"] else services.config.cache.max_age
        return json_response(200, envelope, f"public, max-age={max_age}")

    return pull_through(services.cache, request.url, produce, request_id)


def handle_chat(request: Request, services: WorkerServices, request_id: str, metrics: dict) -> CachedResponse:
    logger = create_execution_logger("chat", request_id)
    try:
        body = json.loads(request.body or "")
    except ValueError:
        return text_response(400, "Invalid JSON body")
    if not isinstance(body, dict):
        return text_response(400, "Invalid JSON body")

    raw_messages = body.get("messages", [])
    filename = body.get("filename", "/")
    if not isinstance(raw_messages, list) or not isinstance(filename, str):
        return text_response(400, "messages must be a list and filename a string")

    messages = to_bedrock_messages(raw_messages)
    if not messages:
        return text_response(400, "At least one user message is required")

    if services.bedrock_client is None:
        logger.error("Chat requested but Bedrock client is unavailable")
        return json_response(503, {"error": "Chat is temporarily unavailable"})

    config = services.config
    http_client = build_http_client(services, request_id)
    registry = ToolRegistry(
        ToolContext(
            filename=filename,
            site_url=config.site.site_url,
            news_client=NewsClient(http_client, config.sources.news_api_url, request_id),
            content_repository=ContentRepository(http_client, config.site),
            site_search=SiteSearchClient(
                http_client,
                services.bedrock_client,
                config.search,
                config.bedrock.embedding_model_id,
                api_key=services.search_api_key,
                request_id=request_id,
            )
            if services.search_enabled
            else None,
        ),
        request_id,
    )
    gateway = ChatGateway(services.bedrock_client, config.bedrock, request_id)
    turn = gateway.run_turn(messages, build_system_prompt(filename, config.site), registry)

    metrics["chat_steps"] += turn.steps
    metrics["tool_calls"] += len(turn.tool_calls)
    logger.info(
        "Chat turn finished",
        steps=turn.steps,
        stop_reason=turn.stop_reason,
        tool_calls=turn.tool_calls,
    )
    return CachedResponse(
        status_code=200,
        body="".join(sse_events(turn)),
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            **CORS_HEADERS,
        },
    )


Handler = Callable[[Request, WorkerServices, str, dict], CachedResponse]

ROUTES: dict[str, tuple[str, Handler]] = {
    "/api/index-cards": ("GET", handle_index_cards),
    "/api/legislator-activity": ("GET", handle_legislator_activity),
    "/api/chat": ("POST", handle_chat),
}


def handle_event(event: dict[str, Any], services: WorkerServices, request_id: str) -> dict[str, Any]:
    """Route one HTTP event and return the Lambda proxy response."""
    logger = create_execution_logger("main", request_id)
    metrics = {
        "cache_misses": 0,
        "source_failures": 0,
        "chat_steps": 0,
        "tool_calls": 0,
    }

    try:
        request = parse_request(event)
    except (ValueError, UnicodeDecodeError) as e:
        logger.warning(f"Malformed request event: {e}")
        return to_lambda_response(text_response(400, "Malformed request"))

    logger.log_request_start(method=request.method, path=request.path)

    route = ROUTES.get(request.path)
    if request.method == "OPTIONS" and request.path.startswith("/api/"):
        response = CachedResponse(status_code=204, body="", headers=dict(CORS_HEADERS))
    elif route is None:
        response = json_response(404, {"error": "Not found"})
    elif request.method != route[0]:
        response = json_response(405, {"error": "Method not allowed"})
    else:
        try:
            response = route[1](request, services, request_id, metrics)
        except Exception as e:
            logger.exception(f"Unhandled error serving {request.path}: {e}", path=request.path)
            response = json_response(500, {"error": "Internal server error"})

    logger.log_request_end(response.status_code, path=request.path)
    logger.log_metrics(metrics)
    if services.config.metrics_enabled:
        send_cloudwatch_metrics(
            request.path, response.status_code, metrics, services.config.aws_region, request_id
        )
    return to_lambda_response(response)


def get_secret_value(secret_name: str, aws_region: str, request_id: str | None = None) -> str:
    """
    Retrieve an API key from AWS Secrets Manager.

    Supports plain string secrets and JSON secrets holding the key under a
    common field name. The secret value is never logged.

    Raises:
        ValueError: If the name or region is empty
        RuntimeError: If the secret cannot be retrieved or holds no usable value
    """
    secrets_logger = create_execution_logger("secrets_manager", request_id)

    if not secret_name or not secret_name.strip():
        raise ValueError("Secret name cannot be empty")
    if not aws_region or not aws_region.strip():
        raise ValueError("AWS region cannot be empty")

    try:
        secrets_logger.info(f"Retrieving secret from Secrets Manager: {secret_name}")
        secrets_client = boto3.client("secretsmanager", region_name=aws_region)
        response = secrets_client.get_secret_value(SecretId=secret_name)
    except ClientError as e:
        error_code = e.response.get("Error", {}).get("Code", "Unknown")
        secrets_logger.error(f"AWS Secrets Manager error retrieving {secret_name}: {error_code}")
        raise RuntimeError(f"Failed to retrieve secret {secret_name}") from e

    secret_value = (response.get("SecretString") or "").strip()
    if not secret_value:
        raise RuntimeError(f"Secret {secret_name} contains empty value")

    try:
        secret_data = json.loads(secret_value)
    except json.JSONDecodeError:
        return secret_value

    if not isinstance(secret_data, dict):
        raise RuntimeError(f"JSON secret {secret_name} must be an object")
    for key in ("api_key", "apikey", "service_role_key", "key", "token"):
        value = secret_data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    raise RuntimeError(f"No API key found in JSON secret {secret_name}")


def send_cloudwatch_metrics(
    path: str, status_code: int, metrics: dict[str, int], aws_region: str, request_id: str
) -> None:
    """Publish per-request metrics to CloudWatch; failures are only logged."""
    metrics_logger = create_execution_logger("cloudwatch_metrics", request_id)
    dimensions = [{"Name": "Endpoint", "Value": path}]
    metric_data = [
        {"MetricName": "Requests", "Value": 1, "Unit": "Count", "Dimensions": dimensions},
        {
            "MetricName": "ServerErrors",
            "Value": 1 if status_code >= 500 else 0,
            "Unit": "Count",
            "Dimensions": dimensions,
        },
        {
            "MetricName": "CacheMisses",
            "Value": metrics["cache_misses"],
            "Unit": "Count",
            "Dimensions": dimensions,
        },
        {
            "MetricName": "SourceFailures",
            "Value": metrics["source_failures"],
            "Unit": "Count",
            "Dimensions": dimensions,
        },
        {
            "MetricName": "ChatSteps",
            "Value": metrics["chat_steps"],
            "Unit": "Count",
            "Dimensions": dimensions,
        },
        {
            "MetricName": "ToolCalls",
            "Value": metrics["tool_calls"],
            "Unit": "Count",
            "Dimensions": dimensions,
        },
    ]

    try:
        cloudwatch = boto3.client("cloudwatch", region_name=aws_region)
        cloudwatch.put_metric_data(Namespace="LegislatorSiteWorker", MetricData=metric_data)
        metrics_logger.debug("Sent request metrics to CloudWatch", metrics=metrics)
    except (ClientError, BotoCoreError) as e:
        metrics_logger.error(f"Failed to send CloudWatch metrics: {e}", error=str(e))
