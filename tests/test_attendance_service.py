"""
Test: Form marking, statistics and legacy migration.
"""
import pytest

from backend.errors import ValidationError
from backend.services.attendance_service import (
    fetch_class_statistics, fetch_school_statistics, mark_class_attendance,
    migrate_legacy_attendance, validate_date,
)
from backend.services.attendance_records import parse_record, StructuredRecord

from conftest import CLASS_NAME, GRADE, TODAY, today_records


def test_validate_date():
    assert validate_date("2024-02-29") == "2024-02-29"
    with pytest.raises(ValidationError):
        validate_date("2023-02-29")


class TestMarkClassAttendance:
    def test_saves_and_skips_unknown(self, store):
        result = mark_class_attendance(store, GRADE, CLASS_NAME, TODAY,
                                       {"s1": "present", "s2": "Late", "ghost": "absent"})
        assert result == {"saved": 2, "skipped": ["ghost"]}
        records = today_records(store)
        assert records["s2"]["status"] == "late"
        assert records["s2"]["studentName"] == "Sampath Silva"

    def test_invalid_status_rejected(self, store):
        with pytest.raises(ValidationError):
            mark_class_attendance(store, GRADE, CLASS_NAME, TODAY, {"s1": "excused"})
        assert today_records(store) == {}

    def test_empty_statuses(self, store):
        with pytest.raises(ValidationError):
            mark_class_attendance(store, GRADE, CLASS_NAME, TODAY, {})


def test_class_statistics(store):
    mark_class_attendance(store, GRADE, CLASS_NAME, TODAY, {"s1": "present", "s2": "late", "s3": "absent"})
    stats = fetch_class_statistics(store, GRADE, CLASS_NAME)
    assert stats["total_days"] == 1
    assert stats["by_date"][0]["percentage"] == pytest.approx(66.7)
    assert len(stats["by_student"]) == 5


def test_school_statistics(store):
    mark_class_attendance(store, GRADE, CLASS_NAME, TODAY, {"s1": "present", "s2": "absent"})
    stats = fetch_school_statistics(store)
    assert [(c["grade"], c["class_name"]) for c in stats["classes"]] == [(10, "B"), (11, "A")]
    assert stats["classes"][0]["percentage"] == 50.0
    assert stats["classes"][1]["total"] == 0
    assert stats["overall"]["total"] == 2


class TestMigration:
    def test_migrates_legacy_booleans(self, store):
        store.set(f"attendance/{GRADE}/{CLASS_NAME}/{TODAY}", {"s1": True, "s2": False, "ghost": True})
        assert migrate_legacy_attendance(store, GRADE, CLASS_NAME, TODAY) is True
        records = today_records(store)
        assert set(records) == {"s1", "s2"}
        record = parse_record(records["s2"])
        assert isinstance(record, StructuredRecord)
        assert record.status == "absent"
        assert record.student_index == "10B002"

    def test_nothing_to_migrate(self, store):
        assert migrate_legacy_attendance(store, GRADE, CLASS_NAME, TODAY) is False
