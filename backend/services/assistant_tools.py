"""
Assistant Tools Service
=======================
Tool execution functions for the attendance assistant.

Every handler takes the AssistantSession as its first argument and returns
``{"success": bool, "message": str, "data": dict}``. Handlers never raise:
the ``tool_handler`` boundary converts failures into unsuccessful results.
"""

import re
import inspect
import logging
import functools
from datetime import datetime

from backend import config as app_config
from backend.errors import AttendanceError, StoreError, ValidationError, NotFoundError, DuplicateError
from backend.services.attendance_records import (
    build_record, count_statuses, merge_attendance, normalize_status,
    student_history, summarize_history, validate_status,
)
from backend.services.student_directory import (
    all_except, find_by_fragment, find_exact, find_many, next_index,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════
# TOOL DEFINITIONS
# ═══════════════════════════════════════════════════════

TOOL_DEFINITIONS = [
    {
        "name": "mark_attendance",
        "description": "Mark a student as present, absent, or late for the current day",
        "input_schema": {
            "type": "object",
            "properties": {
                "student_name": {
                    "type": "string",
                    "description": "Student name (partial match, case-insensitive)"
                },
                "status": {
                    "type": "string",
                    "enum": list(app_config.VALID_STATUSES),
                    "description": "Attendance status to record"
                }
            },
            "required": ["student_name", "status"]
        }
    },
    {
        "name": "mark_bulk_attendance",
        "description": "Mark multiple students, or all students except some, with a specified attendance status",
        "input_schema": {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": list(app_config.VALID_STATUSES),
                    "description": "Attendance status to record"
                },
                "included_student_names": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Names of the specific students to mark"
                },
                "excluded_student_names": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Mark everyone EXCEPT these students"
                },
                "mark_all": {
                    "type": "boolean",
                    "description": "Mark ALL students in the class"
                }
            },
            "required": ["status"]
        }
    },
    {
        "name": "add_new_student",
        "description": "Add a new student to the class. The index is auto-generated when omitted.",
        "input_schema": {
            "type": "object",
            "properties": {
                "student_name": {
                    "type": "string",
                    "description": "Full name of the new student"
                },
                "student_index": {
                    "type": "string",
                    "description": "Optional student index, e.g. 10B007"
                }
            },
            "required": ["student_name"]
        }
    },
    {
        "name": "get_attendance_stats",
        "description": "Get attendance statistics for the class over the last 30 days",
        "input_schema": {"type": "object", "properties": {}}
    },
    {
        "name": "get_today_attendance",
        "description": "Get attendance information for today only, including students not yet recorded",
        "input_schema": {"type": "object", "properties": {}}
    },
    {
        "name": "get_student_list",
        "description": "Get the list of students in the class with their indices",
        "input_schema": {"type": "object", "properties": {}}
    },
    {
        "name": "get_students_by_status",
        "description": "Get a list of students with a specific attendance status for today or a given date",
        "input_schema": {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": list(app_config.VALID_STATUSES),
                    "description": "Status to filter by"
                },
                "date": {
                    "type": "string",
                    "description": "Date in YYYY-MM-DD format (default today)"
                }
            },
            "required": ["status"]
        }
    },
    {
        "name": "get_student_attendance",
        "description": "Get attendance info for a specific student over the last 30 days",
        "input_schema": {
            "type": "object",
            "properties": {
                "student_name": {
                    "type": "string",
                    "description": "Student name (partial match, case-insensitive)"
                }
            },
            "required": ["student_name"]
        }
    },
]


# ═══════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════

def _ok(message, **data):
    return {"success": True, "message": message, "data": data}


def _fail(message):
    return {"success": False, "message": message, "data": {}}


def tool_handler(failure_message):
    """Tool boundary: domain errors become their user message, anything else a generic one."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(session, **params):
            try:
                return fn(session, **params)
            except StoreError as e:
                logger.error("Store error in %s: %s", fn.__name__, e, exc_info=True)
                return _fail(failure_message)
            except AttendanceError as e:
                return _fail(e.user_message())
            except Exception:
                logger.exception("Error executing tool %s", fn.__name__)
                return _fail(failure_message)
        return wrapper
    return decorator


def _require(value, name, example):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing required parameter: {name}.", f"Example: {example}")
    return value.strip()


def _clean_names(names):
    """List of non-blank, stripped names from a list or comma-separated string."""
    if not names:
        return []
    if isinstance(names, str):
        names = names.split(",")
    return [str(n).strip() for n in names if n is not None and str(n).strip()]


def _as_bool(value):
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _parse_date(value):
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError):
        raise ValidationError(f'"{value}" is not a valid date.', "Please use the YYYY-MM-DD format, e.g. 2024-03-18.")


def _display_date(iso_date):
    d = _parse_date(iso_date)
    return f"{d.month}/{d.day}/{d.year}"


def _unique(students):
    seen = set()
    unique = []
    for s in students:
        if s["id"] not in seen:
            seen.add(s["id"])
            unique.append(s)
    return unique


def _write_statuses(session, students, status):
    """Overlay one entry per student onto today's map; other entries stay as they are."""
    existing = session.store.fetch_attendance_for_date(session.grade, session.class_name, session.current_date)
    updates = {s["id"]: build_record(s, status) for s in students}
    session.store.update_attendance(session.grade, session.class_name, session.current_date, updates)
    return existing, merge_attendance(existing, updates)


# ═══════════════════════════════════════════════════════
# TOOL HANDLERS
# ═══════════════════════════════════════════════════════

@tool_handler("There was an error marking attendance. Please try again.")
def mark_attendance(session, student_name=None, status=None):
    """Mark one student for the session's date."""
    student_name = _require(student_name, "student_name", "/mark-present John Doe")
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("Missing required parameter: status.", "Example: /mark-present John Doe")

    student = find_by_fragment(session.students, student_name)
    if student is None:
        raise NotFoundError(
            f'I couldn\'t find a student named "{student_name}" in your class.',
            "Did you maybe spell the name differently? You can type /students to see a list of all students in your class.",
        )
    status = validate_status(status)

    existing, _ = _write_statuses(session, [student], status)
    previous = existing.get(student["id"])
    return _ok(
        f"Great! I've marked {student['name']} as {status} for today.",
        student=student,
        status=status,
        previous_status=normalize_status(previous) if previous is not None else None,
    )


@tool_handler("There was an error marking attendance. Please try again.")
def mark_bulk_attendance(session, status=None, included_student_names=None,
                         excluded_student_names=None, mark_all=False):
    """Mark a selection of students: everyone, everyone except some, or a named list."""
    status = validate_status(status)
    included = _clean_names(included_student_names)
    excluded = _clean_names(excluded_student_names)
    mark_all = _as_bool(mark_all)

    not_found = []
    if mark_all or (excluded and not included):
        selected = all_except(session.students, excluded)
    elif included:
        result = find_many(session.students, included)
        selected, not_found = result["matches"], result["not_found"]
    else:
        raise ValidationError(
            "Please tell me which students to mark.",
            "Example: /mark-students present Sunil, Sampath or /mark-all present",
        )

    selected = _unique(selected)
    if not selected:
        message = "No students were found to update (0 matched)."
        if not_found:
            message += f" I couldn't find: {', '.join(not_found)}."
        raise NotFoundError(message, "You can type /students to see a list of all students in your class.")

    _write_statuses(session, selected, status)

    names = [s["name"] for s in selected]
    if included and not mark_all:
        message = f"Successfully marked {', '.join(names)} as {status}."
        if not_found:
            message += (f" I couldn't find these students: {', '.join(not_found)}. "
                        "Please check their names and try again if needed.")
    elif excluded:
        message = (f"All students except {', '.join(excluded)} have been marked as {status} "
                   f"({len(names)} students).")
    else:
        message = f"All {len(names)} students have been marked as {status}. Have a great day!"

    return _ok(message, updated_students=names, not_found_students=not_found,
               status=status, count=len(names))


@tool_handler("I ran into a problem while adding that student to your class. "
              "Please check that the name is unique and try again.")
def add_new_student(session, student_name=None, student_index=None):
    """Add a student to the roster, generating the next index when none is given."""
    student_name = _require(student_name, "student_name", "/add-student John Doe")

    if find_exact(session.students, student_name):
        raise DuplicateError(
            f'A student named "{student_name}" is already in your class.',
            f'Did you want to mark their attendance instead? You can use "Mark {student_name} as present" '
            "if that's what you meant.",
        )

    index = (student_index or "").strip() if isinstance(student_index, str) else ""
    if not index:
        index = next_index(session.students, session.grade, session.class_name)

    new_id = session.store.add_student(session.grade, session.class_name, student_name, index)
    session.refresh_students()

    return _ok(f"Perfect! I've added {student_name} to your class with index {index}.",
               student_id=new_id, student_name=student_name, student_index=index)


@tool_handler("There was an error retrieving attendance statistics. Please try again.")
def get_attendance_stats(session):
    """Class-wide counts and rates over the recent history window."""
    history = session.store.fetch_attendance_history(
        session.grade, session.class_name, app_config.HISTORY_DAYS)
    summary = summarize_history(history)

    if summary["total_records"] == 0:
        return _ok(
            f"I don't see any attendance records for this class in the last {app_config.HISTORY_DAYS} days. "
            "Once you start recording attendance, I'll be able to show you helpful statistics here!",
            **summary,
        )

    lines = [
        f"Attendance statistics for the last {app_config.HISTORY_DAYS} days:",
        f"- Present: {summary['present_count']} ({summary['present_rate']:.1f}%)",
        f"- Absent: {summary['absent_count']} ({summary['absent_rate']:.1f}%)",
        f"- Late: {summary['late_count']} ({summary['late_rate']:.1f}%)",
        f"- Total records: {summary['total_records']}",
    ]
    if app_config.LATE_COUNTS_AS_ATTENDED:
        lines.append(f"- Attendance rate (late counts as attended): {summary['attendance_rate']:.1f}%")
    else:
        lines.append(f"- Attendance rate: {summary['attendance_rate']:.1f}%")
    return _ok("\n".join(lines), days=len(history), **summary)


@tool_handler("There was an error retrieving the student list. Please try again.")
def get_student_list(session):
    """Full roster with indices."""
    students = session.students
    if not students:
        return _ok(
            "It looks like there aren't any students in your class yet. Would you like me to help you "
            'add some students? Just say "Add a new student" or use the /add-student command.',
            students=[],
        )

    listing = ", ".join(f"{s['name']} ({s['index']})" if s.get("index") else s["name"] for s in students)
    return _ok(
        f"Students in Grade {session.grade} {session.class_name} ({len(students)} total):\n{listing}",
        students=list(students),
    )


@tool_handler("There was an error retrieving the student attendance. Please try again.")
def get_student_attendance(session, student_name=None):
    """One student's counts, rate and most recent records."""
    student_name = _require(student_name, "student_name", "/history John")

    student = find_by_fragment(session.students, student_name)
    if student is None:
        raise NotFoundError(
            f'Could not find a student named "{student_name}" in this class.',
            "You can type /students to see a list of all students in your class.",
        )

    history = session.store.fetch_attendance_history(
        session.grade, session.class_name, app_config.HISTORY_DAYS)
    summary = student_history(history, student["id"])

    if summary["total_days"] == 0:
        return _ok(
            f"No attendance records found for {student['name']} in the last {app_config.HISTORY_DAYS} days.",
            student=student, **summary,
        )

    recent = "\n".join(
        f"{_display_date(r['date'])}: {r['status'].capitalize()}"
        for r in summary["records"][:app_config.RECENT_RECORDS_SHOWN]
    )
    message = (
        f"Attendance for {student['name']}:\n"
        f"- Present: {summary['present_count']} days\n"
        f"- Absent: {summary['absent_count']} days\n"
        f"- Late: {summary['late_count']} days\n"
        f"- Attendance rate: {summary['attendance_rate']:.1f}%\n\n"
        f"Recent attendance:\n{recent}"
    )
    return _ok(message, student=student, **summary)


@tool_handler("There was an error retrieving today's attendance data. Please try again.")
def get_today_attendance(session):
    """Today's counts against the full roster, listing who is not yet recorded."""
    records = session.store.fetch_attendance_for_date(session.grade, session.class_name, session.current_date)
    if not records:
        return _ok(
            "No attendance has been recorded for today yet. Would you like me to help you mark attendance now? "
            'You can say "Mark all present" to get started quickly.',
            date=session.current_date, recorded_count=0,
            not_recorded_count=len(session.students),
            students_without_records=[s["name"] for s in session.students],
        )

    counts = count_statuses(records.values())
    unrecorded = [s for s in session.students if s["id"] not in records]
    limit = app_config.MAX_UNRECORDED_LISTED

    lines = [
        f"Today's Attendance ({_display_date(session.current_date)}):",
        f"- Present: {counts['present']} students",
        f"- Absent: {counts['absent']} students",
        f"- Late: {counts['late']} students",
        f"- Total recorded: {counts['total']} students",
    ]
    if unrecorded:
        lines.append(f"- Not yet recorded: {len(unrecorded)} students")
        lines.append("")
        lines.append("Students without attendance records today:")
        lines.extend(f"- {s['name']}" for s in unrecorded[:limit])
        if len(unrecorded) > limit:
            lines.append(f"... and {len(unrecorded) - limit} more")

        hour = session.now().hour
        if hour < 10:
            lines.append("\nIt's still early - would you like me to help you mark these students now?")
        elif hour > 14:
            lines.append("\nThe day is almost over - don't forget to complete your attendance records. Need help?")
    elif counts["total"] > 0:
        praise = f"\nGreat job! You've recorded attendance for all {counts['total']} students today."
        if counts["present"] == counts["total"]:
            praise += " Everyone is present today - that's fantastic!"
        lines.append(praise)

    return _ok(
        "\n".join(lines),
        date=session.current_date,
        present_count=counts["present"],
        absent_count=counts["absent"],
        late_count=counts["late"],
        recorded_count=counts["total"],
        not_recorded_count=len(unrecorded),
        students_without_records=[s["name"] for s in unrecorded],
    )


@tool_handler("There was an error retrieving the student list. Please try again.")
def get_students_by_status(session, status=None, date=None):
    """Students with a given status on today's (or the given) date, sorted by name."""
    status = validate_status(status)
    date = (date or "").strip() if isinstance(date, str) else ""
    date = date or session.current_date
    _parse_date(date)
    is_today = date == session.current_date
    when = "today" if is_today else f"on {_display_date(date)}"

    records = session.store.fetch_attendance_for_date(session.grade, session.class_name, date)
    if not records:
        return _ok(f"No attendance has been recorded for {'today' if is_today else date}.",
                   date=date, status=status, count=0, students=[])

    roster = {s["id"]: s for s in session.students}
    matched = [
        roster[student_id] for student_id, raw in records.items()
        if student_id in roster and normalize_status(raw) == status
    ]
    matched.sort(key=lambda s: s["name"].casefold())

    if not matched:
        return _ok(f'No students were marked as "{status}" {when}.',
                   date=date, status=status, count=0, students=[])

    lines = [f"Students who are {status} {when} ({len(matched)} total):"]
    for position, s in enumerate(matched, start=1):
        lines.append(f"{position}. {s['name']} ({s['index']})" if s.get("index") else f"{position}. {s['name']}")

    return _ok("\n".join(lines), date=date, status=status, count=len(matched), students=matched)


# ═══════════════════════════════════════════════════════
# TOOL DISPATCH
# ═══════════════════════════════════════════════════════

TOOL_HANDLERS = {
    "mark_attendance": mark_attendance,
    "mark_bulk_attendance": mark_bulk_attendance,
    "add_new_student": add_new_student,
    "get_attendance_stats": get_attendance_stats,
    "get_today_attendance": get_today_attendance,
    "get_student_list": get_student_list,
    "get_students_by_status": get_students_by_status,
    "get_student_attendance": get_student_attendance,
}


def _snake_case(key):
    return re.sub(r'(?<!^)(?=[A-Z])', '_', str(key)).lower()


def normalize_params(tool_input):
    """snake_case keys, None values dropped."""
    if not isinstance(tool_input, dict):
        return {}
    return {_snake_case(k): v for k, v in tool_input.items() if v is not None}


def execute_tool(session, tool_name, tool_input=None):
    """Execute a tool by name. Unknown parameters are ignored; never raises."""
    handler = TOOL_HANDLERS.get(tool_name)
    if not handler:
        return _fail(f"Unknown tool: {tool_name}")

    params = normalize_params(tool_input)
    accepted = inspect.signature(handler).parameters
    ignored = [k for k in params if k not in accepted or k == "session"]
    if ignored:
        logger.debug("Ignoring parameters %s for tool %s", ignored, tool_name)
    params = {k: v for k, v in params.items() if k not in ignored}

    logger.info("Executing tool %s for grade %s%s", tool_name, session.grade, session.class_name)
    try:
        return handler(session, **params)
    except Exception as e:
        logger.exception("Tool %s failed outside its boundary", tool_name)
        return _fail(f"Tool execution error: {str(e)}")
