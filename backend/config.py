"""
Configuration management for the attendance backend.
"""
import os
import json
import logging
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Base paths
BASE_DIR = Path(__file__).parent.parent
BACKEND_DIR = Path(__file__).parent

# User data directories
DATA_DIR = Path(os.getenv("ATTENDANCE_DATA_DIR", str(Path.home() / ".attendance_data")))
STORE_FILE = DATA_DIR / "records.json"
SETTINGS_FILE = DATA_DIR / "settings.json"
AUDIT_LOG_FILE = DATA_DIR / "audit.log"

# Record store backend: "json" (local file) or "supabase"
STORE_BACKEND = os.getenv("ATTENDANCE_STORE", "json")

# API Configuration
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# Server configuration
HOST = "0.0.0.0"
PORT = int(os.getenv("PORT", "3000"))
DEBUG = os.getenv("FLASK_DEBUG", "false").lower() == "true"

# Attendance policy
VALID_STATUSES = ("present", "absent", "late")
HISTORY_DAYS = 30
CONTEXT_MESSAGES = 3
MAX_UNRECORDED_LISTED = 10
RECENT_RECORDS_SHOWN = 5
# Late arrivals count as attended in every attendance-rate computation
LATE_COUNTS_AS_ATTENDED = True

DEFAULT_ASSISTANT_MODEL = "gemini-flash"


class Config:
    """Application configuration class."""

    def __init__(self):
        self.assistant_model = DEFAULT_ASSISTANT_MODEL
        self.store_backend = STORE_BACKEND
        self.data_dir = str(DATA_DIR)

    def to_dict(self):
        return {
            "assistant_model": self.assistant_model,
            "store_backend": self.store_backend,
            "data_dir": self.data_dir,
        }

    def update(self, data: dict):
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def load(self, settings_file=None):
        """Overlay saved settings from disk, if any."""
        settings_file = Path(settings_file or SETTINGS_FILE)
        if not settings_file.exists():
            return self
        try:
            with open(settings_file, 'r', encoding='utf-8') as f:
                self.update(json.load(f))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings from %s: %s", settings_file, e)
        return self

    def save(self, settings_file=None):
        settings_file = Path(settings_file or SETTINGS_FILE)
        settings_file.parent.mkdir(parents=True, exist_ok=True)
        with open(settings_file, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)


# Global config instance
config = Config().load()
