"""
Audit logging for attendance data access and modifications.
Entries are appended locally as ``timestamp | user | action | details`` lines.
"""
import os
import logging
from datetime import datetime

from backend import config as app_config

logger = logging.getLogger(__name__)


def audit_log(action: str, details: str = "", user: str = "teacher"):
    """Log a data access or modification. Never raises."""
    try:
        log_file = app_config.AUDIT_LOG_FILE
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
        timestamp = datetime.now().isoformat()
        with open(log_file, 'a', encoding='utf-8') as f:
            f.write(f"{timestamp} | {user} | {action} | {details}\n")
    except OSError as e:
        logger.warning("Audit log error: %s", e)


def get_audit_logs(limit: int = 100):
    """Retrieve recent audit log entries, newest first."""
    log_file = app_config.AUDIT_LOG_FILE
    if not os.path.exists(log_file):
        return []

    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            lines = f.readlines()
    except OSError as e:
        logger.warning("Could not read audit log: %s", e)
        return []

    recent = lines[-limit:] if len(lines) > limit else lines
    logs = []
    for line in recent:
        parts = line.rstrip('\n').split(' | ', 3)
        if len(parts) >= 4:
            logs.append({
                'timestamp': parts[0],
                'user': parts[1],
                'action': parts[2],
                'details': parts[3],
            })
    return logs[::-1]
