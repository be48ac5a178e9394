"""
Admin routes: teacher profiles, school-wide statistics and the audit log.
"""
from flask import Blueprint, request, jsonify, g, current_app

from backend import config as app_config
from backend.audit import audit_log, get_audit_logs
from backend.auth import require_role
from backend.errors import NotFoundError, ValidationError
from backend.services.attendance_service import fetch_school_statistics

admin_bp = Blueprint('admin', __name__)

TEACHER_FIELDS = ('name', 'email', 'grade', 'class')


def _teacher_fields(data, required):
    fields = {}
    for key in TEACHER_FIELDS:
        value = data.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        fields[key] = value.strip() if isinstance(value, str) else value

    if 'grade' in fields:
        try:
            fields['grade'] = int(fields['grade'])
        except (TypeError, ValueError):
            raise ValidationError("Grade must be a number.")

    missing = [key for key in required if key not in fields]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}.")
    return fields


@admin_bp.route('/api/admin/teachers', methods=['GET'])
@require_role('admin')
def list_teachers():
    teachers = [u for u in current_app.config['RECORD_STORE'].list_users() if u.get('role') == 'teacher']
    teachers.sort(key=lambda t: (str(t.get('grade', '')).zfill(3), t.get('class', ''), t.get('name', '')))
    return jsonify({"teachers": teachers})


@admin_bp.route('/api/admin/teachers', methods=['POST'])
@require_role('admin')
def create_teacher():
    """Save a teacher profile for an account that already exists with the identity provider."""
    data = request.get_json(silent=True) or {}
    uid = (data.get('uid') or '').strip()
    if not uid:
        raise ValidationError("uid is required.", "Create the account first, then save its profile.")

    fields = _teacher_fields(data, required=TEACHER_FIELDS)
    store = current_app.config['RECORD_STORE']
    store.save_user(uid, dict(fields, role='teacher'))
    audit_log("CREATE_TEACHER", f"{fields['email']} for grade {fields['grade']}{fields['class']}",
              user=g.user_email)
    return jsonify(dict(store.get_user(uid), uid=uid)), 201


@admin_bp.route('/api/admin/teachers/<uid>', methods=['PUT'])
@require_role('admin')
def update_teacher(uid):
    store = current_app.config['RECORD_STORE']
    if not store.get_user(uid):
        raise NotFoundError(f"Teacher '{uid}' not found.")

    fields = _teacher_fields(request.get_json(silent=True) or {}, required=())
    if not fields:
        raise ValidationError("Nothing to update.")
    store.update_user(uid, fields)
    audit_log("UPDATE_TEACHER", uid, user=g.user_email)
    return jsonify(dict(store.get_user(uid), uid=uid))


@admin_bp.route('/api/admin/teachers/<uid>', methods=['DELETE'])
@require_role('admin')
def delete_teacher(uid):
    store = current_app.config['RECORD_STORE']
    if not store.get_user(uid):
        raise NotFoundError(f"Teacher '{uid}' not found.")
    store.remove_user(uid)
    audit_log("DELETE_TEACHER", uid, user=g.user_email)
    return jsonify({"status": "deleted", "uid": uid})


@admin_bp.route('/api/admin/statistics', methods=['GET'])
@require_role('admin')
def school_statistics():
    try:
        days = int(request.args.get('days', app_config.HISTORY_DAYS))
    except ValueError:
        raise ValidationError("days must be a number.")
    return jsonify(fetch_school_statistics(current_app.config['RECORD_STORE'], days))


@admin_bp.route('/api/admin/audit-logs', methods=['GET'])
@require_role('admin')
def audit_logs():
    try:
        limit = int(request.args.get('limit', 100))
    except ValueError:
        raise ValidationError("limit must be a number.")
    return jsonify({"logs": get_audit_logs(limit)})
