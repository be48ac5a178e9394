"""
Assistant Commands
==================
Slash commands that map directly onto assistant tools.

Commands are matched by case-insensitive prefix, longest prefix first, so a
short command can never shadow a longer one registered alongside it.
"""

import re
from collections import namedtuple

from backend import config as app_config
from backend.services.assistant_tools import execute_tool

Command = namedtuple("Command", ["prefix", "handler", "usage"])

STATUS_LIST = "present, absent, or late"

UNKNOWN_COMMAND = (
    "I don't recognize that command.\n\n"
    "Did you mean one of these?\n"
    "- /help - See all available commands\n"
    "- /today - Check today's attendance\n"
    "- /students - See your class list\n\n"
    "Or just ask me in plain language what you'd like to do!"
)


def _fail(message):
    return {"success": False, "message": message}


def _run(session, tool_name, params=None):
    result = execute_tool(session, tool_name, params or {})
    return {"success": result["success"], "message": result["message"]}


def _split_names(text):
    return [name.strip() for name in text.split(",") if name.strip()]


def _mark_one(status):
    def handler(session, rest):
        if not rest:
            return _fail(f"Please provide a student name. Example: /mark-{status} John Doe")
        return _run(session, "mark_attendance", {"student_name": rest, "status": status})
    return handler


def _by_status(status):
    def handler(session, rest):
        return _run(session, "get_students_by_status", {"status": status})
    return handler


def _add_student(session, rest):
    if not rest:
        return _fail("Please provide a student name. Example: /add-student John Doe")
    return _run(session, "add_new_student", {"student_name": rest})


def _mark_all(session, rest):
    parts = re.split(r'\bexcept\b', rest, maxsplit=1, flags=re.IGNORECASE)
    status = parts[0].strip().lower()
    if status not in app_config.VALID_STATUSES:
        return _fail(f"Please provide a valid status ({STATUS_LIST}). Example: /mark-all present")

    if len(parts) > 1:
        excluded = _split_names(parts[1])
        if not excluded:
            return _fail("Please list the students to leave out. Example: /mark-all present except Sunil, Sampath")
        return _run(session, "mark_bulk_attendance", {"excluded_student_names": excluded, "status": status})
    return _run(session, "mark_bulk_attendance", {"mark_all": True, "status": status})


def _mark_students(session, rest):
    usage = "Example: /mark-students present Sunil, Sampath"
    parts = rest.split(None, 1)
    if len(parts) < 2:
        return _fail(f"Please provide a status and student names. {usage}")

    status = parts[0].lower()
    if status not in app_config.VALID_STATUSES:
        return _fail(f"Please provide a valid status ({STATUS_LIST}). {usage}")

    names = _split_names(parts[1])
    if not names:
        return _fail(f"Please provide student names separated by commas. {usage}")
    return _run(session, "mark_bulk_attendance", {"included_student_names": names, "status": status})


def _history(session, rest):
    if not rest:
        return _fail("Please provide a student name. Example: /history John")
    return _run(session, "get_student_attendance", {"student_name": rest})


def _help(session, rest):
    hour = session.now().hour
    if hour < 10:
        greeting = "Good morning! Here are some commands to help you start your day:"
        tip = "Tip: Use /mark-all present to quickly mark everyone present, then adjust any absences individually."
    elif hour < 15:
        greeting = "Hello there! Here are the commands you can use:"
        tip = "Tip: Need to see who's here? Try /present to see all present students."
    else:
        greeting = "Good afternoon! Here are commands that might be helpful as you wrap up the day:"
        tip = "Tip: Use /today to get a summary of today's attendance before you leave."

    usage = "\n".join(f"- {c.usage}" for c in COMMANDS)
    return {
        "success": True,
        "message": (f"{greeting}\n\n{usage}\n\n{tip}\n\n"
                    "You can also just chat with me naturally! I'm here to help make your day easier."),
    }


COMMANDS = [
    Command("/add-student", _add_student, "/add-student [name] - Add a new student (index will be auto-generated)"),
    Command("/mark-present", _mark_one("present"), "/mark-present [name] - Mark student as present"),
    Command("/mark-absent", _mark_one("absent"), "/mark-absent [name] - Mark student as absent"),
    Command("/mark-late", _mark_one("late"), "/mark-late [name] - Mark student as late"),
    Command("/mark-all", _mark_all, "/mark-all [status] [except name1, name2] - Mark all students, optionally leaving some out"),
    Command("/mark-students", _mark_students, "/mark-students [status] [name1], [name2], ... - Mark multiple specific students"),
    Command("/today", lambda session, rest: _run(session, "get_today_attendance"), "/today - Show today's attendance statistics"),
    Command("/present", _by_status("present"), "/present - List students who are present today"),
    Command("/absent", _by_status("absent"), "/absent - List students who are absent today"),
    Command("/late", _by_status("late"), "/late - List students who are late today"),
    Command("/stats", lambda session, rest: _run(session, "get_attendance_stats"), "/stats - Show overall attendance statistics"),
    Command("/students", lambda session, rest: _run(session, "get_student_list"), "/students - List all students"),
    Command("/history", _history, "/history [name] - Show a student's recent attendance"),
    Command("/help", _help, "/help - Show this help message"),
]


def _check_shadowing(commands):
    """Raise if a prefix is evaluated before a longer prefix it would swallow."""
    for i, earlier in enumerate(commands):
        for later in commands[i + 1:]:
            if later.prefix.startswith(earlier.prefix):
                raise ValueError(f"Command {earlier.prefix!r} shadows {later.prefix!r}")


# Evaluation order: longest prefix first, then registration order
_DISPATCH_ORDER = sorted(COMMANDS, key=lambda c: -len(c.prefix))
_check_shadowing(_DISPATCH_ORDER)


def match_command(text):
    """The command whose prefix starts the (lower-cased) text, or None."""
    lowered = text.strip().lower()
    for command in _DISPATCH_ORDER:
        if lowered.startswith(command.prefix):
            return command
    return None


def process_command(session, text):
    """Run a slash command and return {"success", "message"}."""
    trimmed = text.strip()
    command = match_command(trimmed)
    if command is None:
        return _fail(UNKNOWN_COMMAND)
    rest = trimmed[len(command.prefix):].strip()
    return command.handler(session, rest)
