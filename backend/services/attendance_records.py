"""
Attendance Records
==================
Normalisation, merge and aggregation of per-date attendance record maps.

A stored entry is either a legacy boolean (True = present, False = absent)
or a structured ``{status, studentName, studentIndex, timestamp}`` object.
Every read goes through ``parse_record`` / ``normalize_status``.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional

from backend import config as app_config
from backend.errors import ValidationError
from backend.store import SERVER_TIMESTAMP


@dataclass(frozen=True)
class LegacyRecord:
    present: bool

    @property
    def status(self):
        return "present" if self.present else "absent"


@dataclass(frozen=True)
class StructuredRecord:
    status: str
    student_name: str = ""
    student_index: str = ""
    timestamp: Optional[Any] = None


def parse_record(raw):
    """Turn a stored entry into a LegacyRecord or StructuredRecord."""
    if isinstance(raw, bool):
        return LegacyRecord(raw)
    if isinstance(raw, str):
        return StructuredRecord(status=raw.strip().lower())
    if isinstance(raw, dict):
        return StructuredRecord(
            status=str(raw.get("status") or "").strip().lower(),
            student_name=raw.get("studentName") or "",
            student_index=raw.get("studentIndex") or "",
            timestamp=raw.get("timestamp"),
        )
    raise ValidationError(f"Unrecognised attendance record: {raw!r}")


def normalize_status(raw):
    """Status string for any stored entry shape."""
    return parse_record(raw).status


def validate_status(status):
    """Lower-cased status, or ValidationError if it is not one of the known values."""
    value = (status or "").strip().lower() if isinstance(status, str) else ""
    if value not in app_config.VALID_STATUSES:
        raise ValidationError(
            'I can only mark students as "present", "absent", or "late".',
            "Could you try again with one of these statuses?",
        )
    return value


def build_record(student, status):
    """Structured entry with denormalised name/index snapshot and a server timestamp."""
    return {
        "studentName": student.get("name", ""),
        "studentIndex": student.get("index", "") or "",
        "status": status,
        "timestamp": dict(SERVER_TIMESTAMP),
    }


def merge_attendance(existing, updates):
    """Overlay updates onto a date's record map without touching other students."""
    merged = dict(existing or {})
    merged.update(updates)
    return merged


def count_statuses(records):
    """Counter with present/absent/late/total over an iterable of stored entries."""
    counts = Counter(present=0, absent=0, late=0, total=0)
    for raw in records:
        status = normalize_status(raw)
        counts["total"] += 1
        if status in ("present", "absent", "late"):
            counts[status] += 1
    return counts


def _percent(part, whole):
    return round(part / whole * 100, 1) if whole else 0.0


def attendance_rate(counts, late_counts_as_attended=None):
    """Percentage attended; late arrivals count as attended under the default policy."""
    if late_counts_as_attended is None:
        late_counts_as_attended = app_config.LATE_COUNTS_AS_ATTENDED
    attended = counts["present"] + (counts["late"] if late_counts_as_attended else 0)
    return _percent(attended, counts["total"])


def summarize_history(history):
    """Aggregate counts and rates across every date map in history."""
    counts = count_statuses(
        raw for records in history.values() for raw in (records or {}).values()
    )
    total = counts["total"]
    return {
        "present_count": counts["present"],
        "absent_count": counts["absent"],
        "late_count": counts["late"],
        "total_records": total,
        "present_rate": _percent(counts["present"], total),
        "absent_rate": _percent(counts["absent"], total),
        "late_rate": _percent(counts["late"], total),
        "attendance_rate": attendance_rate(counts),
    }


def student_history(history, student_id):
    """Counts, rate and dated records (newest first) for one student."""
    records = []
    for date, date_records in history.items():
        raw = (date_records or {}).get(student_id)
        if raw is None:
            continue
        records.append({"date": date, "status": normalize_status(raw)})

    records.sort(key=lambda r: r["date"], reverse=True)
    counts = count_statuses(r["status"] for r in records)
    return {
        "present_count": counts["present"],
        "absent_count": counts["absent"],
        "late_count": counts["late"],
        "total_days": counts["total"],
        "attendance_rate": attendance_rate(counts),
        "records": records,
    }


def class_statistics(history, students):
    """Per-date and per-student tables for a class.

    Percentages count late arrivals as attended.
    """
    by_student = {
        s["id"]: {"name": s["name"], "index": s.get("index", ""),
                  "present": 0, "absent": 0, "late": 0, "total": 0}
        for s in students
    }
    by_date = []
    for date in sorted(history):
        records = history[date] or {}
        counts = count_statuses(records.values())
        by_date.append({
            "date": date,
            "present": counts["present"],
            "absent": counts["absent"],
            "late": counts["late"],
            "total": counts["total"],
            "percentage": attendance_rate(counts, late_counts_as_attended=True),
        })
        for student_id, raw in records.items():
            row = by_student.get(student_id)
            if row is None:
                continue
            status = normalize_status(raw)
            row["total"] += 1
            if status in ("present", "absent", "late"):
                row[status] += 1

    student_rows = []
    for student_id, row in by_student.items():
        row = dict(row, id=student_id)
        row["percentage"] = attendance_rate(row, late_counts_as_attended=True)
        student_rows.append(row)
    student_rows.sort(key=lambda r: r["name"].lower())

    return {
        "by_date": by_date,
        "by_student": student_rows,
        "total_days": len(by_date),
    }
