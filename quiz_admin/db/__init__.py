"""Database module for Quiz Admin."""

from quiz_admin.db import repository
from quiz_admin.db.engine import async_session_factory, engine, get_session
from quiz_admin.db.models import ActivityLog, Admin, Base

__all__ = [
    "Base",
    "Admin",
    "ActivityLog",
    "engine",
    "async_session_factory",
    "get_session",
    "repository",
]
