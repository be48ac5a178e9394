"""
Test: Cross-class permission request flow.
"""
import pytest

from backend.errors import NotFoundError, ValidationError
from backend.services.permission_service import (
    approve_request, check_permission, list_requests, list_teacher_requests,
    reject_request, request_permission,
)

REQUESTER = {"uid": "t2", "email": "kamal@school.lk", "name": "Kamal Teacher"}


def _request(store, date="2024-03-18", reason="Covering for a colleague"):
    return request_permission(store, REQUESTER, "10", "B", date, reason)


class TestRequestPermission:
    def test_creates_pending_request(self, store):
        rid = _request(store)
        request = store.get_permission_request(rid)
        assert request["status"] == "pending"
        assert request["targetGrade"] == 10
        assert request["requesterName"] == "Kamal Teacher"
        assert isinstance(request["requestedAt"], int)

    @pytest.mark.parametrize("grade,class_name,date,reason", [
        ("ten", "B", "2024-03-18", "x"),
        ("10", "", "2024-03-18", "x"),
        ("10", "B", "18/03/2024", "x"),
        ("10", "B", "2024-03-18", "  "),
    ])
    def test_validation(self, store, grade, class_name, date, reason):
        with pytest.raises(ValidationError):
            request_permission(store, REQUESTER, grade, class_name, date, reason)


class TestDecisions:
    def test_approve(self, store):
        rid = _request(store)
        decided = approve_request(store, rid, "a1")
        assert decided["status"] == "approved"
        assert decided["responderId"] == "a1"
        assert "respondedAt" in decided

    def test_reject(self, store):
        rid = _request(store)
        assert reject_request(store, rid, "a1")["status"] == "rejected"

    def test_unknown_request(self, store):
        with pytest.raises(NotFoundError):
            approve_request(store, "missing", "a1")

    def test_listing_filters(self, store):
        first = _request(store)
        _request(store, date="2024-03-19")
        approve_request(store, first, "a1")
        assert [r["id"] for r in list_requests(store, "approved")] == [first]
        assert len(list_teacher_requests(store, "t2")) == 2
        assert list_teacher_requests(store, "t1") == []

    def test_unknown_status_filter(self, store):
        with pytest.raises(ValidationError):
            list_requests(store, "maybe")


class TestCheckPermission:
    def test_assigned_teacher(self, store):
        result = check_permission(store, "t1", 10, "B", "2024-03-18")
        assert result == {"has_permission": True, "is_assigned": True, "permission_request": None}

    def test_pending_is_not_enough(self, store):
        _request(store)
        assert check_permission(store, "t2", 10, "B", "2024-03-18")["has_permission"] is False

    def test_approved_for_that_date_only(self, store):
        approve_request(store, _request(store), "a1")
        assert check_permission(store, "t2", "10", "B", "2024-03-18")["has_permission"] is True
        assert check_permission(store, "t2", "10", "B", "2024-03-19")["has_permission"] is False
