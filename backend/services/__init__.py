"""
Attendance Services
===================

Business logic for the attendance assistant.

Services:
- student_directory: Name-fragment resolution and index generation
- attendance_records: Record normalisation, merge and statistics
- assistant_tools: Tool catalogue executed by the assistant
- assistant_commands: Slash-command registry
- assistant_intent: Natural-language intent resolution
- assistant_session: Per-teacher session state and turn handling
- attendance_service / permission_service: Form marking, migration, permission requests
"""

# Services are imported directly when needed to avoid circular imports
# Example: from backend.services.assistant_tools import execute_tool

__all__ = [
    'student_directory',
    'attendance_records',
    'assistant_tools',
    'assistant_commands',
    'assistant_intent',
    'assistant_session',
    'attendance_service',
    'permission_service',
    'completion_service',
]
