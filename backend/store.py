"""
Record Store
============
Adapters for the attendance document store.

Logical layout (shared by every backend):
    students/{classKey}/{studentId}          -> {name, index}
    attendance/{classKey}/{date}/{studentId} -> {studentName, studentIndex, status, timestamp}
    attendance/{grade}/{class}/{date}        -> legacy boolean maps
    users/{uid}                              -> {email, role, grade, class, name}
    attendancePermissions/{requestId}        -> permission request

JsonRecordStore keeps the tree in one local JSON file (or in memory).
SupabaseRecordStore maps the same operations onto Supabase tables.
"""

import os
import copy
import json
import time
import logging
import secrets
import tempfile
import threading
from datetime import datetime, timezone

from backend import config as app_config
from backend.errors import StoreError

logger = logging.getLogger(__name__)

# Placeholder replaced with the write time by the store
SERVER_TIMESTAMP = {".sv": "timestamp"}


def class_key(grade, class_name):
    """Key for one class roster/timeline, e.g. grade 10 class 'B' -> 'grade10B'."""
    return f"grade{grade}{class_name}"


def _now_millis():
    return int(time.time() * 1000)


def _resolve_timestamps(value, now_ms):
    """Replace SERVER_TIMESTAMP placeholders anywhere inside value."""
    if isinstance(value, dict):
        if value == SERVER_TIMESTAMP:
            return now_ms
        return {k: _resolve_timestamps(v, now_ms) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_timestamps(v, now_ms) for v in value]
    return value


class RecordStore:
    """Interface consumed by the attendance services."""

    # Students
    def fetch_students(self, grade, class_name):
        raise NotImplementedError

    def add_student(self, grade, class_name, name, index):
        raise NotImplementedError

    def update_student(self, grade, class_name, student_id, fields):
        raise NotImplementedError

    def remove_student(self, grade, class_name, student_id):
        raise NotImplementedError

    # Attendance
    def fetch_attendance_for_date(self, grade, class_name, date):
        raise NotImplementedError

    def update_attendance(self, grade, class_name, date, entries):
        """Patch the given student entries; other students on that date are untouched."""
        raise NotImplementedError

    def replace_attendance(self, grade, class_name, date, records):
        raise NotImplementedError

    def fetch_attendance_history(self, grade, class_name, limit=app_config.HISTORY_DAYS):
        raise NotImplementedError

    def fetch_legacy_attendance(self, grade, class_name, date):
        raise NotImplementedError

    def list_class_keys(self):
        raise NotImplementedError

    # Users
    def get_user(self, uid):
        raise NotImplementedError

    def list_users(self):
        raise NotImplementedError

    def save_user(self, uid, data):
        raise NotImplementedError

    def update_user(self, uid, fields):
        raise NotImplementedError

    def remove_user(self, uid):
        raise NotImplementedError

    # Permission requests
    def add_permission_request(self, data):
        raise NotImplementedError

    def get_permission_request(self, request_id):
        raise NotImplementedError

    def list_permission_requests(self):
        raise NotImplementedError

    def update_permission_request(self, request_id, fields):
        raise NotImplementedError


# ═══════════════════════════════════════════════════════
# LOCAL JSON DOCUMENT STORE
# ═══════════════════════════════════════════════════════

class JsonRecordStore(RecordStore):
    """Path-addressed document tree persisted to a single JSON file.

    Pass ``path=None`` for a memory-only store.
    """

    def __init__(self, path=None):
        self.path = str(path) if path else None
        self._lock = threading.RLock()
        self._last_key_ms = 0
        self._key_seq = 0
        self._data = self._load()

    # ── primitives ────────────────────────────────────────

    def _load(self):
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError("Could not read the attendance records.") from e

    def _persist(self):
        if not self.path:
            return
        directory = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            logger.error("Failed to write record store %s: %s", self.path, e)
            raise StoreError("Could not save the attendance records.") from e

    @staticmethod
    def _split(path):
        parts = [p for p in str(path).strip("/").split("/") if p]
        if not parts:
            raise StoreError(f"Invalid store path: '{path}'")
        return parts

    def _node(self, parts):
        node = self._data
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _assign(self, parts, value):
        if value is None:
            parent = self._node(parts[:-1]) if len(parts) > 1 else self._data
            if isinstance(parent, dict):
                parent.pop(parts[-1], None)
            return
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def get(self, path):
        """Return a copy of the value at path, or None if absent."""
        with self._lock:
            return copy.deepcopy(self._node(self._split(path)))

    def _commit(self, assignments):
        """Apply (parts, value) pairs and persist; memory is rolled back if the write fails."""
        with self._lock:
            snapshot = copy.deepcopy(self._data) if self.path else None
            for parts, value in assignments:
                self._assign(parts, value)
            try:
                self._persist()
            except StoreError:
                self._data = snapshot
                raise

    def set(self, path, value):
        """Replace the value at path. Setting None removes it."""
        value = _resolve_timestamps(copy.deepcopy(value), _now_millis())
        self._commit([(self._split(path), value)])

    def update(self, path, fields):
        """Write each child in fields under path, leaving siblings untouched.

        Child keys may themselves be slash-separated relative paths.
        """
        now_ms = _now_millis()
        base = self._split(path)
        self._commit([
            (base + self._split(key), _resolve_timestamps(copy.deepcopy(value), now_ms))
            for key, value in fields.items()
        ])

    def push(self, path, value):
        """Store value under a generated, time-ordered child key and return the key."""
        with self._lock:
            key = self._generate_key()
            self.set(f"{path}/{key}", value)
            return key

    def remove(self, path):
        self.set(path, None)

    def query_last(self, path, limit):
        """The last `limit` children of path ordered by key."""
        with self._lock:
            node = self._node(self._split(path))
            if not isinstance(node, dict):
                return {}
            keys = sorted(node.keys())[-limit:] if limit else sorted(node.keys())
            return {k: copy.deepcopy(node[k]) for k in keys}

    def _generate_key(self):
        now_ms = _now_millis()
        if now_ms == self._last_key_ms:
            self._key_seq += 1
        else:
            self._last_key_ms = now_ms
            self._key_seq = 0
        return f"{now_ms:013d}{self._key_seq:04d}{secrets.token_hex(3)}"

    # ── students ──────────────────────────────────────────

    def fetch_students(self, grade, class_name):
        data = self.get(f"students/{class_key(grade, class_name)}") or {}
        return [
            {"id": sid, "name": d.get("name", ""), "index": d.get("index") or ""}
            for sid, d in data.items() if isinstance(d, dict)
        ]

    def add_student(self, grade, class_name, name, index):
        return self.push(f"students/{class_key(grade, class_name)}", {
            "name": name.strip(),
            "index": (index or "").strip(),
        })

    def update_student(self, grade, class_name, student_id, fields):
        allowed = {k: v.strip() for k, v in fields.items() if k in ("name", "index") and v is not None}
        if allowed:
            self.update(f"students/{class_key(grade, class_name)}/{student_id}", allowed)

    def remove_student(self, grade, class_name, student_id):
        self.remove(f"students/{class_key(grade, class_name)}/{student_id}")

    # ── attendance ────────────────────────────────────────

    def fetch_attendance_for_date(self, grade, class_name, date):
        return self.get(f"attendance/{class_key(grade, class_name)}/{date}") or {}

    def update_attendance(self, grade, class_name, date, entries):
        if entries:
            self.update(f"attendance/{class_key(grade, class_name)}/{date}", entries)

    def replace_attendance(self, grade, class_name, date, records):
        self.set(f"attendance/{class_key(grade, class_name)}/{date}", records or None)

    def fetch_attendance_history(self, grade, class_name, limit=app_config.HISTORY_DAYS):
        history = self.query_last(f"attendance/{class_key(grade, class_name)}", limit)
        if history:
            return history
        legacy = self.query_last(f"attendance/{grade}/{class_name}", limit)
        if legacy:
            logger.info("Found attendance for grade %s%s in the legacy path, consider migrating",
                        grade, class_name)
        return legacy

    def fetch_legacy_attendance(self, grade, class_name, date):
        return self.get(f"attendance/{grade}/{class_name}/{date}") or {}

    def list_class_keys(self):
        return sorted((self.get("students") or {}).keys())

    # ── users ─────────────────────────────────────────────

    def get_user(self, uid):
        return self.get(f"users/{uid}")

    def list_users(self):
        users = self.get("users") or {}
        return [dict(data, uid=uid) for uid, data in users.items() if isinstance(data, dict)]

    def save_user(self, uid, data):
        self.set(f"users/{uid}", data)

    def update_user(self, uid, fields):
        self.update(f"users/{uid}", fields)

    def remove_user(self, uid):
        self.remove(f"users/{uid}")

    # ── permission requests ───────────────────────────────

    def add_permission_request(self, data):
        return self.push("attendancePermissions", data)

    def get_permission_request(self, request_id):
        data = self.get(f"attendancePermissions/{request_id}")
        return dict(data, id=request_id) if data else None

    def list_permission_requests(self):
        requests = self.get("attendancePermissions") or {}
        return [dict(data, id=rid) for rid, data in requests.items()]

    def update_permission_request(self, request_id, fields):
        self.update(f"attendancePermissions/{request_id}", fields)


# ═══════════════════════════════════════════════════════
# SUPABASE STORE
# ═══════════════════════════════════════════════════════

# camelCase record field -> snake_case column
_PERMISSION_COLUMNS = {
    "requesterId": "requester_id",
    "requesterName": "requester_name",
    "requesterEmail": "requester_email",
    "targetGrade": "target_grade",
    "targetClass": "target_class",
    "targetDate": "target_date",
    "reason": "reason",
    "status": "status",
    "requestedAt": "requested_at",
    "respondedAt": "responded_at",
    "responderId": "responder_id",
}


class SupabaseRecordStore(RecordStore):
    """Record store backed by Supabase tables.

    Attendance rows are unique on (class_key, date, student_id), so marking
    a student is a single-row upsert.
    """

    # PostgREST caps responses at 1000 rows by default
    PAGE_SIZE = 1000

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            from supabase import create_client
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_SERVICE_KEY")
            if not url or not key:
                raise StoreError("Supabase credentials not configured. Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env")
            self._client = create_client(url, key)
        return self._client

    def _run(self, action, query):
        try:
            return query.execute().data or []
        except Exception as e:
            logger.error("Supabase %s failed: %s", action, e)
            raise StoreError(f"Could not {action}.") from e

    def _table(self, name):
        return self.client.table(name)

    # ── students ──────────────────────────────────────────

    def fetch_students(self, grade, class_name):
        rows = self._run("load students", self._table("students").select("*")
                         .eq("class_key", class_key(grade, class_name)).order("created_at"))
        return [{"id": str(r["id"]), "name": r.get("name", ""), "index": r.get("index") or ""} for r in rows]

    def add_student(self, grade, class_name, name, index):
        rows = self._run("add student", self._table("students").insert({
            "class_key": class_key(grade, class_name),
            "name": name.strip(),
            "index": (index or "").strip(),
        }))
        return str(rows[0]["id"]) if rows else ""

    def update_student(self, grade, class_name, student_id, fields):
        allowed = {k: v.strip() for k, v in fields.items() if k in ("name", "index") and v is not None}
        if allowed:
            self._run("update student", self._table("students").update(allowed)
                      .eq("class_key", class_key(grade, class_name)).eq("id", student_id))

    def remove_student(self, grade, class_name, student_id):
        self._run("remove student", self._table("students").delete()
                  .eq("class_key", class_key(grade, class_name)).eq("id", student_id))

    # ── attendance ────────────────────────────────────────

    @staticmethod
    def _record_from_row(row):
        return {
            "studentName": row.get("student_name", ""),
            "studentIndex": row.get("student_index") or "",
            "status": row.get("status"),
            "timestamp": row.get("timestamp"),
        }

    def fetch_attendance_for_date(self, grade, class_name, date):
        rows = self._run("load attendance", self._table("attendance").select("*")
                         .eq("class_key", class_key(grade, class_name)).eq("date", date))
        return {str(r["student_id"]): self._record_from_row(r) for r in rows}

    def _attendance_rows(self, grade, class_name, date, entries):
        now_ms = _now_millis()
        rows = []
        for student_id, record in entries.items():
            record = _resolve_timestamps(record, now_ms)
            rows.append({
                "class_key": class_key(grade, class_name),
                "date": date,
                "student_id": student_id,
                "status": record.get("status"),
                "student_name": record.get("studentName", ""),
                "student_index": record.get("studentIndex", ""),
                "timestamp": record.get("timestamp", now_ms),
            })
        return rows

    def update_attendance(self, grade, class_name, date, entries):
        if not entries:
            return
        rows = self._attendance_rows(grade, class_name, date, entries)
        self._run("save attendance", self._table("attendance")
                  .upsert(rows, on_conflict="class_key,date,student_id"))

    def replace_attendance(self, grade, class_name, date, records):
        self._run("clear attendance", self._table("attendance").delete()
                  .eq("class_key", class_key(grade, class_name)).eq("date", date))
        self.update_attendance(grade, class_name, date, records or {})

    def _pages(self, action, build_query):
        """Yield result pages of PAGE_SIZE rows until a short page comes back."""
        offset = 0
        while True:
            rows = self._run(action, build_query().range(offset, offset + self.PAGE_SIZE - 1))
            yield rows
            if len(rows) < self.PAGE_SIZE:
                return
            offset += self.PAGE_SIZE

    def fetch_attendance_history(self, grade, class_name, limit=app_config.HISTORY_DAYS):
        key = class_key(grade, class_name)
        dates = []
        for rows in self._pages("load attendance dates", lambda: self._table("attendance").select("date")
                                .eq("class_key", key).order("date", desc=True)):
            for r in rows:
                if r["date"] not in dates:
                    dates.append(r["date"])
            if len(dates) >= limit:
                break
        dates = dates[:limit]

        history = {}
        for date in sorted(dates):
            records = history.setdefault(date, {})
            for rows in self._pages("load attendance history", lambda: self._table("attendance").select("*")
                                    .eq("class_key", key).eq("date", date).order("student_id")):
                for r in rows:
                    records[str(r["student_id"])] = self._record_from_row(r)
        return history

    def fetch_legacy_attendance(self, grade, class_name, date):
        # Legacy boolean maps only ever lived in the local document store
        return {}

    def list_class_keys(self):
        rows = self._run("load classes", self._table("students").select("class_key"))
        return sorted({r["class_key"] for r in rows})

    # ── users ─────────────────────────────────────────────

    @staticmethod
    def _user_from_row(row):
        user = {k: row.get(k) for k in ("uid", "email", "role", "grade", "name")}
        user["class"] = row.get("class_name")
        return user

    @staticmethod
    def _user_to_row(data):
        row = {k: data[k] for k in ("email", "role", "grade", "name") if k in data}
        if "class" in data:
            row["class_name"] = data["class"]
        return row

    def get_user(self, uid):
        rows = self._run("load user", self._table("users").select("*").eq("uid", uid))
        if not rows:
            return None
        user = self._user_from_row(rows[0])
        user.pop("uid", None)
        return user

    def list_users(self):
        rows = self._run("load users", self._table("users").select("*"))
        return [self._user_from_row(r) for r in rows]

    def save_user(self, uid, data):
        self._run("save user", self._table("users").upsert(dict(self._user_to_row(data), uid=uid)))

    def update_user(self, uid, fields):
        row = self._user_to_row(fields)
        if row:
            self._run("update user", self._table("users").update(row).eq("uid", uid))

    def remove_user(self, uid):
        self._run("remove user", self._table("users").delete().eq("uid", uid))

    # ── permission requests ───────────────────────────────

    @staticmethod
    def _permission_to_row(data):
        row = {}
        for field, column in _PERMISSION_COLUMNS.items():
            if field in data:
                value = data[field]
                if value == SERVER_TIMESTAMP:
                    value = datetime.now(timezone.utc).isoformat()
                row[column] = value
        return row

    @staticmethod
    def _permission_from_row(row):
        data = {field: row.get(column) for field, column in _PERMISSION_COLUMNS.items()}
        data["id"] = str(row["id"])
        return data

    def add_permission_request(self, data):
        rows = self._run("save permission request",
                         self._table("attendance_permissions").insert(self._permission_to_row(data)))
        return str(rows[0]["id"]) if rows else ""

    def get_permission_request(self, request_id):
        rows = self._run("load permission request",
                         self._table("attendance_permissions").select("*").eq("id", request_id))
        return self._permission_from_row(rows[0]) if rows else None

    def list_permission_requests(self):
        rows = self._run("load permission requests",
                         self._table("attendance_permissions").select("*").order("requested_at"))
        return [self._permission_from_row(r) for r in rows]

    def update_permission_request(self, request_id, fields):
        self._run("update permission request", self._table("attendance_permissions")
                  .update(self._permission_to_row(fields)).eq("id", request_id))


_store = None
_store_lock = threading.Lock()


def get_store():
    """Get or create the process-wide record store."""
    global _store
    with _store_lock:
        if _store is None:
            if app_config.STORE_BACKEND == "supabase":
                _store = SupabaseRecordStore()
            else:
                _store = JsonRecordStore(app_config.STORE_FILE)
        return _store
