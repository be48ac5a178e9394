"""
Test: Session state and the per-turn pipeline.
"""
import time

from backend.services.assistant_session import (
    ERROR_REPLY, AssistantSession, SessionRegistry, handle_turn,
)

from conftest import CLASS_NAME, GRADE, FakeCompletion, today_records


class TestHandleTurn:
    def test_command_turn(self, session):
        result = handle_turn(session, "/mark-all present")
        assert result["success"] is True
        assert [m["sender"] for m in session.messages] == ["user", "assistant"]
        assert len(today_records(session.store)) == 5
        assert session.processing is False

    def test_empty_message(self, session):
        assert handle_turn(session, "   ") == {"reply": "", "success": False}
        assert session.messages == []

    def test_natural_language_uses_prior_messages_only(self, session):
        session.add_message("Who is late?", "user")
        session.add_message("Nobody yet.", "assistant")
        complete = FakeCompletion('{"toolToUse": "none"}', "Nobody is absent.")
        result = handle_turn(session, "and absent?", complete=complete)
        assert result == {"reply": "Nobody is absent.", "success": True}
        prompt = complete.prompts[0]
        assert prompt.count("and absent?") == 1
        assert "Teacher: Who is late?" in prompt

    def test_unexpected_error_apologises(self, session, monkeypatch):
        import backend.services.assistant_commands as commands

        def boom(session, text):
            raise RuntimeError("unexpected")
        monkeypatch.setattr(commands, "process_command", boom)
        result = handle_turn(session, "/today")
        assert result == {"reply": ERROR_REPLY, "success": False}
        assert session.processing is False
        assert session.messages[-1]["text"] == ERROR_REPLY


class TestSession:
    def test_recent_messages(self, session):
        for n in range(5):
            session.add_message(str(n), "user")
        assert [m["text"] for m in session.recent_messages()] == ["2", "3", "4"]
        assert [m["text"] for m in session.recent_messages(before=2)] == ["0", "1"]

    def test_clear_restores_welcome(self, session):
        session.add_message("hi", "user")
        session.clear()
        assert len(session.messages) == 1
        assert session.messages[0]["sender"] == "assistant"
        assert "Grade 10 B" in session.messages[0]["text"]

    def test_to_dict(self, session):
        data = session.to_dict()
        assert data["session_id"] == "test-session"
        assert data["student_count"] == 5
        assert data["current_date"] == "2024-03-18"


class TestSessionRegistry:
    def test_create_loads_roster_and_welcomes(self, store):
        registry = SessionRegistry()
        created = registry.create(GRADE, CLASS_NAME, store, owner="t1")
        assert len(created.students) == 5
        assert created.messages[0]["sender"] == "assistant"
        assert registry.get(created.session_id) is created

    def test_roster_failure_still_creates(self, store, monkeypatch):
        def boom(*args):
            raise RuntimeError("offline")
        monkeypatch.setattr(store, "fetch_students", boom)
        created = SessionRegistry().create(GRADE, CLASS_NAME, store)
        assert created.students == []

    def test_idle_sessions_expire(self, store):
        registry = SessionRegistry(ttl=60)
        created = registry.create(GRADE, CLASS_NAME, store)
        created.last_active = time.time() - 120
        assert registry.get(created.session_id) is None
        assert len(registry) == 0

    def test_independent_sessions(self, store):
        registry = SessionRegistry()
        a = AssistantSession(GRADE, CLASS_NAME, store)
        b = AssistantSession(GRADE, CLASS_NAME, store)
        a.add_message("hello", "user")
        assert b.messages == []
        assert a.session_id != b.session_id
        assert len(registry) == 0
