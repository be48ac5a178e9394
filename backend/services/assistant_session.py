"""
Assistant Session
=================
Per-teacher conversation state passed explicitly to every tool call,
plus the per-turn pipeline (command or natural language -> reply).
"""

import time
import uuid
import logging
import threading
from datetime import datetime

from backend import config as app_config

logger = logging.getLogger(__name__)

ERROR_REPLY = (
    "I'm sorry, I ran into a problem while processing your request.\n\n"
    "Could you try rephrasing that, or use one of the commands from the /help menu? "
    "I want to make sure I'm understanding what you need assistance with."
)


class AssistantSession:
    """Conversation and roster cache for one teacher working on one class."""

    def __init__(self, grade, class_name, store, session_id=None, current_date=None, clock=None, owner=None):
        self.session_id = session_id or str(uuid.uuid4())
        self.owner = owner
        self.grade = grade
        self.class_name = class_name
        self.store = store
        self.clock = clock or datetime.now
        self.current_date = current_date or self.clock().strftime("%Y-%m-%d")
        self.students = []
        self.messages = []
        self.processing = False
        self.turn_lock = threading.Lock()
        self.last_active = time.time()

    def refresh_students(self):
        """Reload the roster cache from the store."""
        self.students = self.store.fetch_students(self.grade, self.class_name)
        return self.students

    def now(self):
        return self.clock()

    def add_message(self, text, sender):
        message = {"text": text, "sender": sender, "timestamp": self.now().isoformat()}
        self.messages.append(message)
        self.last_active = time.time()
        return message

    def recent_messages(self, limit=app_config.CONTEXT_MESSAGES, before=None):
        """Last `limit` messages, optionally only those preceding index `before`."""
        history = self.messages if before is None else self.messages[:before]
        return history[-limit:] if limit else []

    def clear(self):
        """Drop the conversation and start again from the welcome message."""
        self.messages = []
        self.add_message(self.welcome_message(), "assistant")

    def welcome_message(self):
        return (
            f"Hello there! I'm your teaching assistant for Grade {self.grade} {self.class_name}. "
            "I'm here to make your day easier!\n\n"
            "I can help you with:\n"
            '- Marking attendance (e.g., "Mark Hasith as absent" or "Mark Sunil and Sampath as present")\n'
            "- Adding new students to your class (I'll auto-generate their indices!)\n"
            "- Showing you who's present, absent, or late today\n"
            "- Providing attendance statistics and reports\n\n"
            "What can I help you with today? Type /help to see all commands."
        )

    def to_dict(self):
        return {
            "session_id": self.session_id,
            "grade": self.grade,
            "class_name": self.class_name,
            "current_date": self.current_date,
            "student_count": len(self.students),
            "processing": self.processing,
            "messages": list(self.messages),
        }


class SessionRegistry:
    """In-memory sessions keyed by id, dropped after a period of inactivity."""

    def __init__(self, ttl=7200):
        self.ttl = ttl
        self._sessions = {}
        self._lock = threading.Lock()

    def create(self, grade, class_name, store, **kwargs):
        session = AssistantSession(grade, class_name, store, **kwargs)
        try:
            session.refresh_students()
        except Exception as e:
            logger.error("Error fetching students for session %s: %s", session.session_id, e)
        session.add_message(session.welcome_message(), "assistant")
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id):
        self.cleanup()
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id):
        with self._lock:
            return self._sessions.pop(session_id, None)

    def cleanup(self):
        """Remove sessions idle for longer than the TTL."""
        now = time.time()
        with self._lock:
            stale = [sid for sid, s in self._sessions.items() if now - s.last_active > self.ttl]
            for sid in stale:
                del self._sessions[sid]
        return len(stale)

    def __len__(self):
        return len(self._sessions)


def is_command(text):
    return text.strip().startswith("/")


def handle_turn(session, text, complete=None):
    """Run one conversation turn and return {"reply", "success"}.

    Commands go to the command registry, everything else to the intent
    resolver. Any failure yields an apologetic reply; ``processing`` is
    always cleared.
    """
    from backend.services.assistant_commands import process_command
    from backend.services.assistant_intent import resolve

    text = (text or "").strip()
    if not text:
        return {"reply": "", "success": False}

    history_end = len(session.messages)
    session.add_message(text, "user")
    session.processing = True
    try:
        if is_command(text):
            result = process_command(session, text)
            reply, success = result["message"], result["success"]
        else:
            history = session.recent_messages(before=history_end)
            reply, success = resolve(session, text, history, complete=complete), True
    except Exception:
        logger.exception("Error processing message in session %s", session.session_id)
        reply, success = ERROR_REPLY, False
    finally:
        session.processing = False

    session.add_message(reply, "assistant")
    return {"reply": reply, "success": success}
