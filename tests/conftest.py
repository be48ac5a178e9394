"""
Shared test fixtures for the attendance assistant.
Every test runs against an in-memory record store seeded with one class.
Zero network calls: completions come from a scripted fake.
"""
import time
from datetime import datetime

import jwt
import pytest

from backend import config as app_config
from backend.store import JsonRecordStore, class_key
from backend.services.assistant_session import AssistantSession

GRADE = 10
CLASS_NAME = "B"
TODAY = "2024-03-18"
JWT_SECRET = "test-jwt-secret-that-is-long-enough-for-hs256"

ROSTER = [
    ("s1", "Sunil Perera", "10B001"),
    ("s2", "Sampath Silva", "10B002"),
    ("s3", "Hasith Fernando", "10B003"),
    ("s4", "Amara Jayasuriya", "10B004"),
    ("s5", "Samantha Dias", "10B005"),
]

USERS = {
    "t1": {"role": "teacher", "name": "Nimali Teacher", "email": "nimali@school.lk", "grade": 10, "class": "B"},
    "t2": {"role": "teacher", "name": "Kamal Teacher", "email": "kamal@school.lk", "grade": 11, "class": "A"},
    "a1": {"role": "admin", "name": "Principal", "email": "principal@school.lk"},
}


class FakeCompletion:
    """Scripted stand-in for the completion service.

    Each call pops the next scripted reply; an Exception instance is raised
    instead of returned. Every prompt is recorded.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def __call__(self, prompt):
        self.prompts.append(prompt)
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def audit_file(tmp_path, monkeypatch):
    """Keep audit entries out of the real data directory."""
    log_file = str(tmp_path / "audit.log")
    monkeypatch.setattr(app_config, "AUDIT_LOG_FILE", log_file)
    return log_file


@pytest.fixture
def store():
    """Memory-only store with the roster and user profiles."""
    s = JsonRecordStore()
    s.set(f"students/{class_key(GRADE, CLASS_NAME)}", {
        sid: {"name": name, "index": index} for sid, name, index in ROSTER
    })
    s.set("users", USERS)
    return s


@pytest.fixture
def clock():
    return lambda: datetime(2024, 3, 18, 9, 30)


@pytest.fixture
def session(store, clock):
    s = AssistantSession(GRADE, CLASS_NAME, store, session_id="test-session",
                         current_date=TODAY, clock=clock, owner="t1")
    s.refresh_students()
    return s


@pytest.fixture
def fake_completion():
    return FakeCompletion()


def today_records(store):
    return store.fetch_attendance_for_date(GRADE, CLASS_NAME, TODAY)


# ═══════════════════════════════════════════════════════
# HTTP
# ═══════════════════════════════════════════════════════

def make_token(uid, role=None, grade=None, class_name=None, email=None, secret=JWT_SECRET, expires_in=3600):
    metadata = {}
    if role:
        metadata = {"role": role, "grade": grade, "class": class_name}
    payload = {
        "sub": uid,
        "email": email or f"{uid}@school.lk",
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
        "app_metadata": metadata,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def app(store, fake_completion, monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", JWT_SECRET)
    from backend.app import create_app
    flask_app = create_app(store=store, complete=fake_completion)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def teacher_headers():
    return {"Authorization": f"Bearer {make_token('t1', 'teacher', 10, 'B')}"}


@pytest.fixture
def other_teacher_headers():
    return {"Authorization": f"Bearer {make_token('t2', 'teacher', 11, 'A')}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('a1', 'admin')}"}
