"""
Attendance Service
==================
Form-based marking, class/school statistics and legacy data migration.
"""
import logging
from datetime import datetime

from backend import config as app_config
from backend.errors import ValidationError
from backend.services.attendance_records import (
    attendance_rate, build_record, class_statistics, count_statuses,
    normalize_status, validate_status,
)

logger = logging.getLogger(__name__)


def validate_date(date):
    try:
        datetime.strptime(date or "", "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f'"{date}" is not a valid date.', "Use the YYYY-MM-DD format.")
    return date


def mark_class_attendance(store, grade, class_name, date, statuses):
    """Record {student_id: status} for one date. Ids not on the roster are skipped.

    Returns {"saved": n, "skipped": [ids]}.
    """
    validate_date(date)
    if not isinstance(statuses, dict) or not statuses:
        raise ValidationError("No attendance statuses provided.")

    roster = {s["id"]: s for s in store.fetch_students(grade, class_name)}
    entries = {}
    skipped = []
    for student_id, status in statuses.items():
        student = roster.get(student_id)
        if student is None:
            skipped.append(student_id)
            continue
        entries[student_id] = build_record(student, validate_status(status))

    store.update_attendance(grade, class_name, date, entries)
    if skipped:
        logger.warning("Skipped %d unknown students marking grade %s%s on %s",
                       len(skipped), grade, class_name, date)
    return {"saved": len(entries), "skipped": skipped}


def fetch_class_statistics(store, grade, class_name, days=app_config.HISTORY_DAYS):
    history = store.fetch_attendance_history(grade, class_name, days)
    students = store.fetch_students(grade, class_name)
    return class_statistics(history, students)


def fetch_school_statistics(store, days=app_config.HISTORY_DAYS):
    """Per-class totals for every class a teacher is assigned to, plus the overall rate."""
    classes = []
    seen = set()
    for user in store.list_users():
        if user.get("role") != "teacher" or user.get("grade") is None or not user.get("class"):
            continue
        grade, class_name = user["grade"], user["class"]
        if (grade, class_name) in seen:
            continue
        seen.add((grade, class_name))

        history = store.fetch_attendance_history(grade, class_name, days)
        counts = count_statuses(raw for records in history.values() for raw in (records or {}).values())
        classes.append({
            "grade": grade,
            "class_name": class_name,
            "teacher": user.get("name") or user.get("email", ""),
            "present": counts["present"],
            "absent": counts["absent"],
            "late": counts["late"],
            "total": counts["total"],
            "percentage": attendance_rate(counts, late_counts_as_attended=True),
        })

    classes.sort(key=lambda c: (str(c["grade"]).zfill(3), str(c["class_name"])))
    overall = {key: sum(c[key] for c in classes) for key in ("present", "absent", "late", "total")}
    return {
        "classes": classes,
        "overall": dict(overall, percentage=attendance_rate(overall, late_counts_as_attended=True)),
    }


def migrate_legacy_attendance(store, grade, class_name, date):
    """Copy one date from the legacy boolean path into the structured path.

    Returns False when there is no legacy data for that date.
    """
    validate_date(date)
    legacy = store.fetch_legacy_attendance(grade, class_name, date)
    if not legacy:
        logger.info("No legacy attendance for grade %s%s on %s", grade, class_name, date)
        return False

    roster = {s["id"]: s for s in store.fetch_students(grade, class_name)}
    records = {}
    for student_id, raw in legacy.items():
        student = roster.get(student_id)
        if student is None:
            continue
        records[student_id] = build_record(student, normalize_status(raw))

    store.replace_attendance(grade, class_name, date, records)
    logger.info("Migrated %d legacy records for grade %s%s on %s", len(records), grade, class_name, date)
    return True
