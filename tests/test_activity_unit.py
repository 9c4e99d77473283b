"""Unit tests for legislative record mapping."""

from datetime import UTC, datetime

import pytest

from legislator_worker.activity import (
    BillActivity,
    MeetActivity,
    bill_to_activity,
    describe_details,
    join_values,
    map_bill,
    map_meet,
    meet_to_activity,
    pick_first_string,
    sort_activities,
)
from legislator_worker.models import ActivityItem


class TestMapBillUnit:
    """Unit tests for map_bill."""

    def test_full_record(self):
        record = {
            "議案編號": "202110012345",
            "議案名稱": "人工智慧基本法草案",
            "議案狀態": "交付審查",
            "法律編號:str": ["人工智慧基本法", "資通安全管理法"],
            "最新進度日期": "2024-03-01",
            "相關附件": [{"名稱": "關係文書"}, {"網址": "https://lis.example/a.pdf"}],
            "會議代碼": "meet-1",
        }

        bill = map_bill(record)

        assert bill == BillActivity(
            id="202110012345",
            title="人工智慧基本法草案",
            status="交付審查",
            law="人工智慧基本法、資通安全管理法",
            updated_at="2024-03-01",
            url="https://lis.example/a.pdf",
            meeting_code="meet-1",
        )

    def test_english_separator(self):
        record = {"議案編號": "1", "法律編號": ["A", "B"]}
        assert map_bill(record, "en").law == "A, B"

    def test_fallbacks(self):
        record = {"議案編號": "1", "資料抓取時間": "2024-01-01", "url": "https://x"}
        bill = map_bill(record)
        assert bill.title == "1"
        assert bill.updated_at == "2024-01-01"
        assert bill.url == "https://x"
        assert bill.law is None

    def test_missing_identifier_skipped(self):
        assert map_bill({"議案名稱": "x"}) is None
        assert map_bill("not a record") is None


class TestMapMeetUnit:
    """Unit tests for map_meet."""

    def test_full_record(self):
        record = {
            "會議代碼": "委員會-11-1-22-3",
            "會議標題": "第11屆第1會期交通委員會第3次全體委員會議",
            "會議種類": "委員會",
            "日期": ["2024-03-06", "2024-03-07"],
            "地點": "紅樓202",
            "連結": [
                {"類型": "Video", "連結": "https://video.example"},
                {"類型": "User", "連結": "https://ppg.example/meet"},
            ],
        }

        meet = map_meet(record)

        assert meet.id == "委員會-11-1-22-3"
        assert meet.name == "第11屆第1會期交通委員會第3次全體委員會議"
        assert meet.type == "委員會"
        assert meet.date == "2024-03-06"
        assert meet.location == "紅樓202"
        assert meet.url == "https://ppg.example/meet"

    def test_meeting_data_fallbacks(self):
        record = {
            "會議代碼": "m1",
            "會議資料": [{"日期": "2024-02-01", "ppg_url": "https://ppg.example/1"}],
        }
        meet = map_meet(record)
        assert meet.name == "m1"
        assert meet.date == "2024-02-01"
        assert meet.url == "https://ppg.example/1"

    def test_missing_identifier_skipped(self):
        assert map_meet({"標題": "x"}) is None


class TestActivityConversionUnit:
    """Unit tests for activity conversion and sorting."""

    def test_bill_to_activity(self):
        bill = BillActivity(id="1", title="t", status="s", updated_at="113年5月1日")
        activity = bill_to_activity(bill, "cosign")
        assert activity.type == "cosign"
        assert activity.date == datetime(2024, 5, 1, tzinfo=UTC)
        assert activity.details == {"status": "s"}

    def test_bill_to_activity_rejects_meet(self):
        with pytest.raises(ValueError):
            bill_to_activity(BillActivity(id="1", title="t"), "meet")

    def test_meet_to_activity(self):
        activity = meet_to_activity(MeetActivity(id="m", name="n", date="bad date", location="L"))
        assert activity.type == "meet"
        assert activity.date is None
        assert activity.details == {"location": "L"}

    def test_sort_newest_first_nulls_last_stable(self):
        activities = [
            ActivityItem(id="a", type="meet", title="a"),
            ActivityItem(id="b", type="meet", title="b", date=datetime(2024, 1, 1, tzinfo=UTC)),
            ActivityItem(id="c", type="meet", title="c"),
            ActivityItem(id="d", type="meet", title="d", date=datetime(2024, 3, 1, tzinfo=UTC)),
            ActivityItem(id="e", type="meet", title="e", date=datetime(2024, 1, 1, tzinfo=UTC)),
        ]
        assert [a.id for a in sort_activities(activities)] == ["d", "b", "e", "a", "c"]

    def test_to_dict(self):
        activity = ActivityItem(
            id="1",
            type="propose",
            title="t",
            date=datetime(2024, 3, 1, tzinfo=UTC),
            details={"status": "s", "law": ""},
        )
        assert activity.to_dict() == {
            "id": "1",
            "type": "propose",
            "title": "t",
            "date": "2024-03-01T00:00:00Z",
            "url": None,
            "details": {"status": "s"},
        }

    def test_describe_details(self):
        activity = ActivityItem(id="1", type="meet", title="t", details={"meetingType": "院會", "location": "議場"})
        assert describe_details(activity, "zh-TW") == "會議類型: 院會、地點: 議場"
        assert describe_details(activity, "en") == "Meeting Type: 院會, Location: 議場"

    def test_value_helpers(self):
        assert pick_first_string(["", " ", "x"]) == "x"
        assert pick_first_string([1, 2]) is None
        assert join_values([" a ", "", 3, "b"]) == "a、b"
        assert join_values([]) is None
