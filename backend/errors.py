"""
Error types for attendance operations.

Tools raise these internally; the tool boundary turns them into
``{"success": False, "message": ...}`` results so nothing propagates
into the conversation loop.
"""


class AttendanceError(Exception):
    """Base exception for attendance rule violations."""

    def __init__(self, message, suggestion=None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def user_message(self):
        if self.suggestion:
            return f"{self.message} {self.suggestion}"
        return self.message


class ValidationError(AttendanceError):
    """Missing or invalid parameter."""


class NotFoundError(AttendanceError):
    """Student or record does not exist."""


class DuplicateError(AttendanceError):
    """Student already exists in the class."""


class StoreError(AttendanceError):
    """Underlying record store read or write failed."""


class InterpretationError(AttendanceError):
    """Completion service returned output that could not be parsed."""


class CompletionError(AttendanceError):
    """Completion service is unavailable or not configured."""


class PermissionDeniedError(AttendanceError):
    """Caller may not act on the requested class."""
