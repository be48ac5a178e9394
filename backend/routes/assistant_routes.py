"""
Assistant API Routes
====================
Conversation endpoints for the attendance assistant. Each session is bound
to one class and one date; turns run through the command registry or the
intent resolver.
"""

import logging

from flask import Blueprint, request, jsonify, g, current_app

from backend.audit import audit_log
from backend.auth import can_access_class
from backend.errors import NotFoundError, PermissionDeniedError, ValidationError
from backend.services.assistant_commands import COMMANDS
from backend.services.assistant_session import handle_turn
from backend.services.assistant_tools import TOOL_DEFINITIONS
from backend.services.attendance_service import validate_date

logger = logging.getLogger(__name__)

assistant_bp = Blueprint('assistant', __name__)


def _get_session(session_id):
    session = current_app.config['ASSISTANT_SESSIONS'].get(session_id or '')
    if session is None:
        raise NotFoundError("Session not found or expired.", "Start a new session.")
    if session.owner != g.user_id:
        raise PermissionDeniedError("This session belongs to another user.")
    return session


@assistant_bp.route('/api/assistant/session', methods=['POST'])
def create_session():
    """Start a conversation for the caller's class (admins may name any class)."""
    data = request.get_json(silent=True) or {}
    grade = data.get('grade', g.grade)
    class_name = data.get('class_name', g.class_name)
    if grade is None or not class_name:
        raise ValidationError("No class is assigned to this account.",
                              "Pass grade and class_name explicitly.")

    current_date = data.get('date')
    if current_date:
        validate_date(current_date)
    if not can_access_class(grade, class_name, current_date):
        raise PermissionDeniedError(f"You do not have access to Grade {grade} {class_name}.",
                                    "Request permission from an administrator first.")

    session = current_app.config['ASSISTANT_SESSIONS'].create(
        grade, class_name, current_app.config['RECORD_STORE'],
        current_date=current_date, owner=g.user_id,
    )
    audit_log("ASSISTANT_SESSION", f"grade {grade}{class_name} on {session.current_date}", user=g.user_email)
    return jsonify(session.to_dict())


@assistant_bp.route('/api/assistant/chat', methods=['POST'])
def chat():
    """Run one turn: {session_id, message} -> {reply, success, messages}."""
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id'))
    message = data.get('message', '')
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message is required.")
    if not session.turn_lock.acquire(blocking=False):
        return jsonify({"error": "Still working on your previous message."}), 409
    try:
        result = handle_turn(session, message, complete=current_app.config.get('COMPLETION_FN'))
    finally:
        session.turn_lock.release()
    audit_log("ASSISTANT_CHAT", message.strip()[:100], user=g.user_email)
    return jsonify({
        "reply": result["reply"],
        "success": result["success"],
        "messages": session.messages,
    })


@assistant_bp.route('/api/assistant/clear', methods=['POST'])
def clear_conversation():
    """Reset a session's conversation to the welcome message."""
    data = request.get_json(silent=True) or {}
    session = _get_session(data.get('session_id'))
    session.clear()
    return jsonify({"status": "cleared", "messages": session.messages})


@assistant_bp.route('/api/assistant/tools', methods=['GET'])
def list_tools():
    return jsonify({
        "tools": [{"name": t["name"], "description": t["description"]} for t in TOOL_DEFINITIONS],
        "commands": [c.usage for c in COMMANDS],
    })
