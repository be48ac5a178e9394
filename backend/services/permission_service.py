"""
Permission Requests
===================
Teachers ask an admin for permission to mark attendance for a class they
are not assigned to, for one specific date.
"""
import logging

from backend.errors import NotFoundError, ValidationError
from backend.services.attendance_service import validate_date
from backend.store import SERVER_TIMESTAMP

logger = logging.getLogger(__name__)

PERMISSION_STATUSES = ("pending", "approved", "rejected")


def _validate_filter(status):
    if status is not None and status not in PERMISSION_STATUSES:
        raise ValidationError(f"Unknown request status '{status}'.",
                              f"Use one of: {', '.join(PERMISSION_STATUSES)}.")


def request_permission(store, requester, target_grade, target_class, target_date, reason):
    """Create a pending request and return its id.

    ``requester`` is a dict with uid, email and (optionally) name.
    """
    try:
        target_grade = int(target_grade)
    except (TypeError, ValueError):
        raise ValidationError("Grade must be a number.")
    target_class = (target_class or "").strip()
    if not target_class:
        raise ValidationError("Class is required.")
    validate_date(target_date)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Please give a reason for the request.")

    request_id = store.add_permission_request({
        "requesterId": requester["uid"],
        "requesterEmail": requester.get("email", ""),
        "requesterName": requester.get("name") or requester.get("email", ""),
        "targetGrade": target_grade,
        "targetClass": target_class,
        "targetDate": target_date,
        "reason": reason,
        "status": "pending",
        "requestedAt": dict(SERVER_TIMESTAMP),
    })
    logger.info("Permission request %s for grade %s%s on %s", request_id, target_grade, target_class, target_date)
    return request_id


def list_requests(store, status=None):
    _validate_filter(status)
    requests = store.list_permission_requests()
    if status:
        requests = [r for r in requests if r.get("status") == status]
    return requests


def list_teacher_requests(store, teacher_id, status=None):
    return [r for r in list_requests(store, status) if r.get("requesterId") == teacher_id]


def _decide(store, request_id, responder_id, decision):
    request = store.get_permission_request(request_id)
    if request is None:
        raise NotFoundError(f"Permission request '{request_id}' not found.")
    store.update_permission_request(request_id, {
        "status": decision,
        "responderId": responder_id,
        "respondedAt": dict(SERVER_TIMESTAMP),
    })
    return store.get_permission_request(request_id)


def approve_request(store, request_id, responder_id):
    return _decide(store, request_id, responder_id, "approved")


def reject_request(store, request_id, responder_id):
    return _decide(store, request_id, responder_id, "rejected")


def check_permission(store, teacher_id, grade, class_name, date):
    """Whether a teacher may mark attendance for a class on a date."""
    user = store.get_user(teacher_id)
    if (user and user.get("role") == "teacher"
            and str(user.get("grade")) == str(grade) and user.get("class") == class_name):
        return {"has_permission": True, "is_assigned": True, "permission_request": None}

    approved = [
        r for r in store.list_permission_requests()
        if r.get("requesterId") == teacher_id
        and str(r.get("targetGrade")) == str(grade)
        and r.get("targetClass") == class_name
        and r.get("targetDate") == date
        and r.get("status") == "approved"
    ]
    return {
        "has_permission": bool(approved),
        "is_assigned": False,
        "permission_request": approved[0] if approved else None,
    }
