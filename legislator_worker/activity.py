"""Mapping of legislative API records into ActivityItems."""

from dataclasses import dataclass
from typing import Any

from .dates import parse_to_date
from .models import COSIGN, LANG_EN, LANG_ZH, MEET, PROPOSE, ActivityItem

DETAIL_LABELS = {
    LANG_ZH: {
        "status": "議案狀態",
        "law": "法律編號",
        "meetingType": "會議類型",
        "location": "地點",
    },
    LANG_EN: {
        "status": "Bill Status",
        "law": "Law Number",
        "meetingType": "Meeting Type",
        "location": "Location",
    },
}


@dataclass
class BillActivity:
    """A bill record as read from the legislative API."""

    id: str
    title: str
    status: str | None = None
    law: str | None = None
    updated_at: str | None = None
    url: str | None = None
    meeting_code: str | None = None


@dataclass
class MeetActivity:
    """A meeting record as read from the legislative API."""

    id: str
    name: str
    type: str | None = None
    date: str | None = None
    location: str | None = None
    url: str | None = None
    updated_at: str | None = None


def list_separator(lang: str) -> str:
    return ", " if lang == LANG_EN else "、"


def _text(record: dict, key: str) -> str | None:
    value = record.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _records(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


def pick_first_string(value: Any) -> str | None:
    """First non-blank string from a string-or-list field."""
    if isinstance(value, list):
        for entry in value:
            if isinstance(entry, str) and entry.strip():
                return entry
        return None
    if isinstance(value, str) and value.strip():
        return value
    return None


def join_values(value: Any, lang: str = LANG_ZH) -> str | None:
    """Join a string-or-list field with the language's list separator."""
    if isinstance(value, list):
        parts = [entry.strip() for entry in value if isinstance(entry, str) and entry.strip()]
        return list_separator(lang).join(parts) or None
    if isinstance(value, str) and value:
        return value
    return None


def map_bill(record: Any, lang: str = LANG_ZH) -> BillActivity | None:
    """Map a raw bill record; records without a bill number are skipped."""
    if not isinstance(record, dict):
        return None
    bill_id = _text(record, "議案編號")
    if not bill_id:
        return None

    url = _text(record, "url")
    if not url:
        attachment = next(
            (entry for entry in _records(record.get("相關附件")) if _text(entry, "網址")),
            None,
        )
        if attachment:
            url = attachment["網址"]

    return BillActivity(
        id=bill_id,
        title=_text(record, "議案名稱") or bill_id,
        status=_text(record, "議案狀態"),
        law=join_values(record.get("法律編號:str"), lang) or join_values(record.get("法律編號"), lang),
        updated_at=_text(record, "最新進度日期") or _text(record, "資料抓取時間"),
        url=url,
        meeting_code=_text(record, "會議代碼"),
    )


def map_meet(record: Any, lang: str = LANG_ZH) -> MeetActivity | None:
    """Map a raw meeting record; records without a meeting code are skipped."""
    if not isinstance(record, dict):
        return None
    meet_id = _text(record, "會議代碼")
    if not meet_id:
        return None

    meeting_data = _records(record.get("會議資料"))

    date = pick_first_string(record.get("日期"))
    if not date and meeting_data:
        date = pick_first_string(meeting_data[0].get("日期"))

    # User-facing link first, then the gazette page of the meeting data
    url = None
    link = next(
        (
            entry
            for entry in _records(record.get("連結"))
            if _text(entry, "連結") and entry.get("類型") in (None, "", "User")
        ),
        None,
    )
    if link:
        url = link["連結"]
    if not url:
        ppg = next((entry for entry in meeting_data if _text(entry, "ppg_url")), None)
        if ppg:
            url = ppg["ppg_url"]

    return MeetActivity(
        id=meet_id,
        name=_text(record, "標題") or _text(record, "會議標題") or _text(record, "name") or meet_id,
        type=_text(record, "會議種類"),
        date=date,
        location=_text(record, "地點"),
        url=url,
        updated_at=_text(record, "資料抓取時間"),
    )


def _details(**values: str | None) -> dict[str, str]:
    return {key: value for key, value in values.items() if value}


def bill_to_activity(bill: BillActivity, activity_type: str) -> ActivityItem:
    if activity_type not in (PROPOSE, COSIGN):
        raise ValueError(f"Bills map to propose or cosign, not {activity_type}")
    return ActivityItem(
        id=bill.id,
        type=activity_type,
        title=bill.title,
        date=parse_to_date(bill.updated_at),
        url=bill.url,
        details=_details(status=bill.status, law=bill.law),
    )


def meet_to_activity(meet: MeetActivity) -> ActivityItem:
    return ActivityItem(
        id=meet.id,
        type=MEET,
        title=meet.name,
        date=parse_to_date(meet.date),
        url=meet.url,
        details=_details(meetingType=meet.type, location=meet.location),
    )


def sort_activities(activities: list[ActivityItem]) -> list[ActivityItem]:
    """Newest first; undated activities last. Ties keep their input order."""
    return sorted(
        activities,
        key=lambda activity: (
            activity.date is None,
            -activity.date.timestamp() if activity.date else 0.0,
        ),
    )


def describe_details(activity: ActivityItem, lang: str) -> str:
    """Localized "label: value" list of the activity's non-empty details."""
    labels = DETAIL_LABELS.get(lang, DETAIL_LABELS[LANG_ZH])
    return list_separator(lang).join(
        f"{labels.get(key, key)}: {value}" for key, value in activity.details.items() if value
    )
