"""
Attendance routes: per-date records, class statistics and legacy migration.
"""
from flask import Blueprint, request, jsonify, g, current_app

from backend import config as app_config
from backend.audit import audit_log
from backend.auth import can_access_class, require_role
from backend.errors import PermissionDeniedError, ValidationError
from backend.services.attendance_records import LegacyRecord, parse_record
from backend.services.attendance_service import (
    fetch_class_statistics, mark_class_attendance, migrate_legacy_attendance, validate_date,
)

attendance_bp = Blueprint('attendance', __name__)


def _require_access(grade, class_name, date=None):
    if not can_access_class(grade, class_name, date):
        raise PermissionDeniedError(
            f"You do not have permission to mark attendance for Grade {grade} {class_name}"
            + (f" on {date}." if date else "."),
            "Request permission from an administrator first.",
        )


@attendance_bp.route('/api/classes/<grade>/<class_name>/attendance/<date>', methods=['GET'])
def get_attendance(grade, class_name, date):
    validate_date(date)
    _require_access(grade, class_name, date)
    store = current_app.config['RECORD_STORE']

    stored = (store.fetch_attendance_for_date(grade, class_name, date)
              or store.fetch_legacy_attendance(grade, class_name, date))
    records = {}
    for student_id, raw in stored.items():
        record = parse_record(raw)
        records[student_id] = {
            "status": record.status,
            "legacy": isinstance(record, LegacyRecord),
        }
    return jsonify({"date": date, "records": records})


@attendance_bp.route('/api/classes/<grade>/<class_name>/attendance/<date>', methods=['POST'])
def save_attendance(grade, class_name, date):
    """Save {statuses: {student_id: status}} for one date."""
    validate_date(date)
    _require_access(grade, class_name, date)
    data = request.get_json(silent=True) or {}

    result = mark_class_attendance(current_app.config['RECORD_STORE'], grade, class_name,
                                   date, data.get('statuses'))
    audit_log("MARK_ATTENDANCE", f"grade {grade}{class_name} on {date}: {result['saved']} students",
              user=g.user_email)
    return jsonify(result)


@attendance_bp.route('/api/classes/<grade>/<class_name>/statistics', methods=['GET'])
def class_statistics(grade, class_name):
    _require_access(grade, class_name)
    try:
        days = int(request.args.get('days', app_config.HISTORY_DAYS))
    except ValueError:
        raise ValidationError("days must be a number.")
    if days < 1:
        raise ValidationError("days must be at least 1.")
    return jsonify(fetch_class_statistics(current_app.config['RECORD_STORE'], grade, class_name, days))


@attendance_bp.route('/api/classes/<grade>/<class_name>/attendance/<date>/migrate', methods=['POST'])
@require_role('admin')
def migrate_attendance(grade, class_name, date):
    """Copy a legacy boolean attendance date into the structured path."""
    migrated = migrate_legacy_attendance(current_app.config['RECORD_STORE'], grade, class_name, date)
    if migrated:
        audit_log("MIGRATE_ATTENDANCE", f"grade {grade}{class_name} on {date}", user=g.user_email)
    return jsonify({"migrated": migrated})
