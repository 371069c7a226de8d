"""Local session state."""

from quiz_admin.session.storage import FileStorage, MemoryStorage, SessionStorage
from quiz_admin.session.store import SESSION_KEY, SessionRecord, SessionStore

__all__ = [
    "SESSION_KEY",
    "FileStorage",
    "MemoryStorage",
    "SessionRecord",
    "SessionStorage",
    "SessionStore",
]
