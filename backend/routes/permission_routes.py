"""
Cross-class attendance permission requests.
Teachers ask; admins approve or reject.
"""
from flask import Blueprint, request, jsonify, g, current_app

from backend.audit import audit_log
from backend.auth import require_role
from backend.services.permission_service import (
    approve_request, check_permission, list_requests, list_teacher_requests,
    reject_request, request_permission,
)

permission_bp = Blueprint('permissions', __name__)


@permission_bp.route('/api/permissions', methods=['POST'])
@require_role('teacher')
def create_request():
    data = request.get_json(silent=True) or {}
    requester = {"uid": g.user_id, "email": g.user_email, "name": g.user_name}
    request_id = request_permission(
        current_app.config['RECORD_STORE'], requester,
        data.get('target_grade'), data.get('target_class'),
        data.get('target_date'), data.get('reason'),
    )
    audit_log("REQUEST_PERMISSION",
              f"grade {data.get('target_grade')}{data.get('target_class')} on {data.get('target_date')}",
              user=g.user_email)
    return jsonify({"id": request_id, "status": "pending"}), 201


@permission_bp.route('/api/permissions', methods=['GET'])
@require_role('admin')
def all_requests():
    requests = list_requests(current_app.config['RECORD_STORE'], request.args.get('status'))
    return jsonify({"requests": requests})


@permission_bp.route('/api/permissions/mine', methods=['GET'])
def my_requests():
    requests = list_teacher_requests(current_app.config['RECORD_STORE'], g.user_id,
                                     request.args.get('status'))
    return jsonify({"requests": requests})


@permission_bp.route('/api/permissions/<request_id>/approve', methods=['POST'])
@require_role('admin')
def approve(request_id):
    decided = approve_request(current_app.config['RECORD_STORE'], request_id, g.user_id)
    audit_log("APPROVE_PERMISSION", request_id, user=g.user_email)
    return jsonify(decided)


@permission_bp.route('/api/permissions/<request_id>/reject', methods=['POST'])
@require_role('admin')
def reject(request_id):
    decided = reject_request(current_app.config['RECORD_STORE'], request_id, g.user_id)
    audit_log("REJECT_PERMISSION", request_id, user=g.user_email)
    return jsonify(decided)


@permission_bp.route('/api/permissions/check', methods=['GET'])
def check():
    """?grade=&class_name=&date= for the calling teacher."""
    result = check_permission(
        current_app.config['RECORD_STORE'], g.user_id,
        request.args.get('grade'), request.args.get('class_name'), request.args.get('date'),
    )
    return jsonify(result)
