"""Date normalization and relative-time formatting."""

import math
import re
from datetime import UTC, datetime

from dateutil import parser as date_parser

from .models import LANG_EN

ROC_YEAR_OFFSET = 1911
ROC_DATE_PATTERN = re.compile(r"^(\d{2,3})年(\d{1,2})月(\d{1,2})日")

# (seconds, english unit, chinese unit), largest first
INTERVALS = (
    (31536000, "year", "年"),
    (2592000, "month", "個月"),
    (86400, "day", "天"),
    (3600, "hour", "小時"),
    (60, "minute", "分鐘"),
)


def normalize_roc_date(value: str) -> str | None:
    """Rewrite a Republic-of-China calendar date (e.g. 113年5月1日) as YYYY-MM-DD."""
    match = ROC_DATE_PATTERN.match(value)
    if not match:
        return None
    year = int(match.group(1)) + ROC_YEAR_OFFSET
    return f"{year}-{int(match.group(2)):02d}-{int(match.group(3)):02d}"


def parse_to_date(raw: str | None) -> datetime | None:
    """Parse a source date string into a timezone-aware UTC datetime.

    Accepts ROC dates, slash-separated dates and anything dateutil understands.
    Naive values are taken as UTC. Returns None for empty or unparseable input.
    """
    if not raw or not isinstance(raw, str):
        return None
    trimmed = raw.strip()
    if not trimmed:
        return None

    roc = normalize_roc_date(trimmed)
    if roc:
        try:
            return datetime.strptime(roc, "%Y-%m-%d").replace(tzinfo=UTC)
        except ValueError:
            pass

    try:
        parsed = date_parser.parse(trimmed.replace("/", "-"))
    except (ValueError, OverflowError, TypeError):
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def time_ago(value: str | datetime | None, lang: str, now: datetime | None = None) -> str:
    """Format a date relative to now, e.g. "3 days ago" / "3 天前".

    Differences under a minute in either direction render as "Just now" / "剛剛".
    Future dates use "in 3 days" / "3 天後". Unparseable input renders as "".
    """
    date = value if isinstance(value, datetime) else parse_to_date(value)
    if date is None:
        return ""
    if date.tzinfo is None:
        date = date.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)

    seconds = math.floor((now - date).total_seconds())
    future = seconds < 0
    elapsed = abs(seconds)

    for length, en_unit, zh_unit in INTERVALS:
        count = elapsed // length
        if count > 0:
            if lang == LANG_EN:
                unit = en_unit if count == 1 else f"{en_unit}s"
                return f"in {count} {unit}" if future else f"{count} {unit} ago"
            return f"{count} {zh_unit}{'後' if future else '前'}"

    return "Just now" if lang == LANG_EN else "剛剛"
