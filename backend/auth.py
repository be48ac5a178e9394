"""
Supabase JWT Authentication for the attendance backend.
Validates Bearer tokens on all /api/ routes except public endpoints and
exposes the caller's role and assigned class on Flask's g.
"""
import os
import logging
from functools import wraps

import jwt
from flask import request, jsonify, g, current_app

from backend.services.permission_service import check_permission

logger = logging.getLogger(__name__)

PUBLIC_EXACT = [
    '/api/status',
    '/api/health',
]


def get_jwt_secret():
    """Get the Supabase JWT secret from environment."""
    secret = os.getenv('SUPABASE_JWT_SECRET')
    if not secret:
        raise RuntimeError('SUPABASE_JWT_SECRET not configured')
    return secret


def validate_token(token):
    """
    Validate a Supabase JWT and return the decoded payload.
    Returns None if invalid.
    """
    try:
        return jwt.decode(
            token,
            get_jwt_secret(),
            algorithms=['HS256'],
            audience='authenticated',
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired token")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected invalid token: %s", e)
        return None


def is_public_route(path):
    return path in PUBLIC_EXACT


def _profile_claims(payload):
    """Role and class from token claims, falling back to the stored user profile."""
    claims = dict(payload.get('app_metadata') or {})
    if not claims.get('role'):
        profile = current_app.config['RECORD_STORE'].get_user(payload.get('sub')) or {}
        claims.update({k: v for k, v in profile.items() if k in ('role', 'grade', 'class', 'name')})
    return claims


def init_auth(app):
    """
    Register the before_request auth hook on the Flask app.
    Call this BEFORE registering blueprints.
    """
    @app.before_request
    def check_auth():
        if not request.path.startswith('/api/') or is_public_route(request.path):
            return None

        auth_header = request.headers.get('Authorization', '')
        if not auth_header.startswith('Bearer '):
            return jsonify({'error': 'Authentication required'}), 401

        payload = validate_token(auth_header[7:])
        if payload is None:
            return jsonify({'error': 'Invalid or expired token'}), 401

        claims = _profile_claims(payload)
        g.user_id = payload.get('sub')
        g.user_email = payload.get('email', '')
        g.user_name = claims.get('name', '')
        g.role = claims.get('role', '')
        g.grade = claims.get('grade')
        g.class_name = claims.get('class')


def require_role(*roles):
    """Reject the request with 403 unless g.role is one of roles."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if getattr(g, 'role', None) not in roles:
                return jsonify({'error': 'You do not have access to this resource'}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def can_access_class(grade, class_name, date=None):
    """Admins, the assigned teacher, or a teacher with an approved request for date."""
    store = current_app.config["RECORD_STORE"]
    if g.role == 'admin':
        return True
    if g.role != 'teacher':
        return False
    if str(g.grade) == str(grade) and g.class_name == class_name:
        return True
    if date is None:
        return False
    return check_permission(store, g.user_id, grade, class_name, date)["has_permission"]
