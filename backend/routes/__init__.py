"""
Attendance API Routes
=====================

All API route blueprints for the attendance application.

Usage:
    from backend.routes import register_routes
    register_routes(app)
"""
import logging

from flask import jsonify

from backend.errors import (
    AttendanceError, DuplicateError, NotFoundError, PermissionDeniedError,
    StoreError, ValidationError,
)
from .assistant_routes import assistant_bp
from .student_routes import student_bp
from .attendance_routes import attendance_bp
from .permission_routes import permission_bp
from .admin_routes import admin_bp

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: 400,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    DuplicateError: 409,
    StoreError: 500,
}


def _handle_attendance_error(error):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(error, cls)), 400)
    if status >= 500:
        logger.error("Request failed: %s", error)
    body = {"error": error.message}
    if error.suggestion:
        body["suggestion"] = error.suggestion
    return jsonify(body), status


def register_routes(app):
    """Register all route blueprints with the Flask app."""
    app.register_error_handler(AttendanceError, _handle_attendance_error)

    app.register_blueprint(assistant_bp)
    app.register_blueprint(student_bp)
    app.register_blueprint(attendance_bp)
    app.register_blueprint(permission_bp)
    app.register_blueprint(admin_bp)


__all__ = [
    'register_routes',
    'assistant_bp',
    'student_bp',
    'attendance_bp',
    'permission_bp',
    'admin_bp',
]
