"""Legislator activity aggregation over the legislative records API."""

import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from .activity import bill_to_activity, map_bill, map_meet, meet_to_activity, sort_activities
from .config import SourcesConfig
from .errors import UpstreamError
from .http_client import HttpClient
from .logging_config import create_execution_logger
from .models import COSIGN, LANG_ZH, MEET, PROPOSE, ActivityItem, PaginationMeta

# activity type -> (endpoint, response list key)
ENDPOINTS = {
    PROPOSE: ("propose_bills", "bills"),
    COSIGN: ("cosign_bills", "bills"),
    MEET: ("meets", "meets"),
}
MIN_PREFETCH = 100
SOURCE_NAME = "legislative_api"


@dataclass
class ActivityFetch:
    """Merged activities plus the activity types whose upstream list failed."""

    activities: list[ActivityItem] = field(default_factory=list)
    failed_types: list[str] = field(default_factory=list)


class LegislativeApi:
    """Client for one legislator's lists on the legislative records API."""

    def __init__(
        self,
        http_client: HttpClient,
        config: SourcesConfig,
        request_id: str | None = None,
    ):
        self.http_client = http_client
        self.config = config
        self.logger = create_execution_logger("legislative_api", request_id)

    def list_url(self, activity_type: str) -> str:
        endpoint, _ = ENDPOINTS[activity_type]
        name = quote(self.config.legislator_name, safe="")
        return (
            f"{self.config.legislative_api_base}/legislators/"
            f"{self.config.legislator_term}/{name}/{endpoint}"
        )

    def fetch_records(self, activity_type: str, limit: int) -> list[dict]:
        """Fetch the first `limit` raw records of one list.

        Raises:
            UpstreamError: If the call fails or the payload is not an object
        """
        _, key = ENDPOINTS[activity_type]
        source = f"{SOURCE_NAME}.{activity_type}"
        payload = self.http_client.get_json(
            self.list_url(activity_type),
            params={"page": 1, "limit": limit},
            source=source,
        )
        if not isinstance(payload, dict):
            raise UpstreamError(source, "expected a JSON object")

        records = payload.get(key)
        if records is None:
            return []
        if not isinstance(records, list):
            raise UpstreamError(source, f"'{key}' is not a list")
        return records

    def fetch_all(self, limit: int) -> dict[str, list[dict] | UpstreamError]:
        """Fetch the three lists concurrently.

        Each entry holds either the records or the error that list raised.
        """
        results: dict[str, Any] = {}
        with ThreadPoolExecutor(max_workers=len(ENDPOINTS)) as executor:
            futures = {
                activity_type: executor.submit(self.fetch_records, activity_type, limit)
                for activity_type in ENDPOINTS
            }
            for activity_type, future in futures.items():
                try:
                    results[activity_type] = future.result()
                except UpstreamError as e:
                    results[activity_type] = e
        return results


class LegislatorActivityService:
    """Merges proposed bills, co-signed bills and meetings into one timeline."""

    def __init__(self, api: LegislativeApi, request_id: str | None = None):
        self.api = api
        self.logger = create_execution_logger("legislator_activity", request_id)

    def get_activities(self, limit: int, lang: str = LANG_ZH) -> ActivityFetch:
        """Fetch up to `limit` records per list, map, merge and sort them."""
        fetch = ActivityFetch()
        for activity_type, records in self.api.fetch_all(limit).items():
            if isinstance(records, UpstreamError):
                self.logger.error(
                    f"Failed to fetch {activity_type} list: {records}",
                    source=f"{SOURCE_NAME}.{activity_type}",
                )
                fetch.failed_types.append(activity_type)
                continue

            if activity_type == MEET:
                mapped = [map_meet(record, lang) for record in records]
                items = [meet_to_activity(meet) for meet in mapped if meet]
            else:
                mapped = [map_bill(record, lang) for record in records]
                items = [bill_to_activity(bill, activity_type) for bill in mapped if bill]

            skipped = len(records) - len(items)
            if skipped:
                self.logger.debug(
                    f"Skipped {skipped} {activity_type} records without identifiers",
                    source=f"{SOURCE_NAME}.{activity_type}",
                )
            self.logger.log_source_fetch(f"{SOURCE_NAME}.{activity_type}", len(items))
            fetch.activities.extend(items)

        fetch.activities = sort_activities(fetch.activities)
        return fetch

    def get_legislator_activity(
        self, page: int = 1, page_size: int = 20, lang: str = LANG_ZH
    ) -> dict:
        """Paginate the merged timeline.

        Each upstream list is fetched as one prefix of max(100, page * page_size)
        records, so activities beyond that window are not reachable.

        Raises:
            UpstreamError: If all three upstream lists failed
        """
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        fetch = self.get_activities(max(MIN_PREFETCH, page * page_size), lang)
        if len(fetch.failed_types) == len(ENDPOINTS):
            raise UpstreamError(SOURCE_NAME, "all activity lists failed")

        total_items = len(fetch.activities)
        start = (page - 1) * page_size
        meta = PaginationMeta(
            page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=math.ceil(total_items / page_size),
        )
        return {
            "success": True,
            "data": [activity.to_dict() for activity in fetch.activities[start : start + page_size]],
            "meta": meta.to_dict(),
            "partial": bool(fetch.failed_types),
        }
