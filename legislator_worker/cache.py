"""Pull-through response cache keyed by full request URL."""

import json
import re
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .logging_config import create_execution_logger

MAX_AGE_PATTERN = re.compile(r"max-age=(\d+)")
DEFAULT_MAX_ENTRIES = 512


@dataclass
class CachedResponse:
    """A serialized HTTP response."""

    status_code: int
    body: str
    headers: dict[str, str] = field(default_factory=dict)


class ResponseCache(Protocol):
    def get(self, key: str) -> CachedResponse | None: ...

    def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None: ...


def max_age_from_headers(headers: dict[str, str]) -> int:
    """Cacheable lifetime in seconds declared by Cache-Control, 0 if none."""
    cache_control = next(
        (value for name, value in headers.items() if name.lower() == "cache-control"), ""
    ).lower()
    if "no-store" in cache_control or "no-cache" in cache_control or "private" in cache_control:
        return 0
    match = MAX_AGE_PATTERN.search(cache_control)
    return int(match.group(1)) if match else 0


class InMemoryResponseCache:
    """Per-process cache bounded to `max_entries`.

    Expired entries are purged on every write; when still full, the entries
    stored longest ago are evicted first.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES, clock: Callable[[], float] = time.time):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, tuple[float, CachedResponse]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> CachedResponse | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, response = entry
            if expires_at <= self.clock():
                del self._entries[key]
                return None
            return response

    def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None:
        with self._lock:
            now = self.clock()
            for expired in [k for k, (expires_at, _) in self._entries.items() if expires_at <= now]:
                del self._entries[expired]

            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (now + ttl_seconds, response)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DynamoDBResponseCache:
    """Shared cache in a DynamoDB table with a TTL attribute."""

    def __init__(
        self,
        table_name: str,
        aws_region: str = "us-east-1",
        request_id: str | None = None,
    ):
        """Initialize the cache with DynamoDB configuration.

        Args:
            table_name: Name of the DynamoDB table (partition key `cache_key`)
            aws_region: AWS region for the DynamoDB resource
            request_id: Request ID for logging context
        """
        self.table_name = table_name
        self.logger = create_execution_logger("response_cache", request_id)
        self.dynamodb = boto3.resource("dynamodb", region_name=aws_region)
        self.table = self.dynamodb.Table(table_name)

    def get(self, key: str) -> CachedResponse | None:
        response = self.table.get_item(Key={"cache_key": key})
        item = response.get("Item")
        if not item:
            return None
        # DynamoDB deletes expired items lazily
        if int(item.get("ttl", 0)) <= int(time.time()):
            return None
        return CachedResponse(
            status_code=int(item["status_code"]),
            body=item["body"],
            headers=json.loads(item.get("headers") or "{}"),
        )

    def put(self, key: str, response: CachedResponse, ttl_seconds: int) -> None:
        ttl_timestamp = int(time.time()) + ttl_seconds
        self.table.put_item(
            Item={
                "cache_key": key,
                "status_code": response.status_code,
                "body": response.body,
                "headers": json.dumps(response.headers),
                "ttl": ttl_timestamp,
            }
        )
        self.logger.debug("Stored response in DynamoDB", cache_key=key, ttl_timestamp=ttl_timestamp)


def pull_through(
    cache: ResponseCache | None,
    key: str,
    producer: Callable[[], CachedResponse],
    request_id: str | None = None,
) -> CachedResponse:
    """Serve from cache, or produce the response and store it.

    Only 200 responses whose Cache-Control allows caching are stored, for their
    max-age. Cache failures are logged and treated as a miss.
    """
    logger = create_execution_logger("response_cache", request_id)

    if cache is not None:
        try:
            cached = cache.get(key)
        except (ClientError, BotoCoreError, ValueError, KeyError) as e:
            logger.warning(f"Cache read failed: {e}", cache_key=key, error=str(e))
            cached = None
        if cached is not None:
            logger.info("Cache hit", cache_key=key)
            return CachedResponse(
                status_code=cached.status_code,
                body=cached.body,
                headers={**cached.headers, "X-Cache": "HIT"},
            )

    response = producer()
    ttl_seconds = max_age_from_headers(response.headers)
    if cache is None or response.status_code != 200 or ttl_seconds <= 0:
        return response

    try:
        cache.put(key, response, ttl_seconds)
    except (ClientError, BotoCoreError) as e:
        logger.warning(f"Cache write failed: {e}", cache_key=key, error=str(e))
    return CachedResponse(
        status_code=response.status_code,
        body=response.body,
        headers={**response.headers, "X-Cache": "MISS"},
    )
