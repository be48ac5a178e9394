"""
Attendance Backend Package
==========================

Flask-based backend for the school attendance assistant.

Structure:
- routes/: API route blueprints
- services/: Attendance rules, assistant tools, commands and intent resolution
- store.py: Record store adapters (local JSON file, Supabase)
- config.py: Configuration management
"""

from .config import Config

__version__ = "1.0.0"

__all__ = ['Config']
