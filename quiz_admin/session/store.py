"""Single-slot local session with absolute expiry and sliding activity timeout.

A session is valid iff ``now <= expires_at`` and
``now - last_activity <= activity_timeout``. Either condition alone voids it,
and any read that finds it void deletes it.

The store is an explicit object owned by its caller (a request handler, a CLI
invocation, a page). Two stores pointed at the same storage share the slot,
last write wins.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable

from pydantic import BaseModel, ValidationError

from quiz_admin.config import settings
from quiz_admin.session.storage import SessionStorage

logger = logging.getLogger(__name__)

SESSION_KEY = "quiz_session"

ExpiredCallback = Callable[[], None]


class SessionRecord(BaseModel):
    """Identity snapshot taken at login. Role is not re-fetched until next login."""

    session_id: str
    user_id: str
    email: str
    role: str
    login_time: float
    last_activity: float
    expires_at: float


def generate_session_id() -> str:
    return secrets.token_urlsafe(24)


class SessionStore:
    """Local session slot plus a single deferred expiry check.

    Args:
        storage: Key-value backend holding the serialized record
        lifetime: Absolute session lifetime in seconds
        activity_timeout: Idle window in seconds
        clock: Returns the current timestamp in seconds (injectable for testing)
    """

    def __init__(
        self,
        storage: SessionStorage,
        *,
        lifetime: float | None = None,
        activity_timeout: float | None = None,
        clock: Callable[[], float] = time.time,
        key: str = SESSION_KEY,
    ) -> None:
        self.storage = storage
        self.lifetime = settings.session_lifetime_seconds if lifetime is None else lifetime
        self.activity_timeout = (
            settings.activity_timeout_seconds if activity_timeout is None else activity_timeout
        )
        self.clock = clock
        self.key = key
        self._timer: asyncio.TimerHandle | None = None
        self._expired_callbacks: list[ExpiredCallback] = []

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create(self, user_id: str, email: str, role: str) -> SessionRecord:
        """Start a new session, replacing whatever occupied the slot."""
        now = self.clock()
        record = SessionRecord(
            session_id=generate_session_id(),
            user_id=user_id,
            email=email,
            role=role,
            login_time=now,
            last_activity=now,
            expires_at=now + self.lifetime,
        )
        self._write(record)
        self._schedule_expiry_check(self.activity_timeout)
        logger.info(f"Session created for {email} (role={role})")
        return record

    def read(self) -> SessionRecord | None:
        """Load the session, deleting it if absent, expired, idle or unreadable."""
        record = self._load()
        if record is None:
            return None

        if self._is_stale(record, self.clock()):
            logger.info(f"Session for {record.email} is no longer valid, clearing")
            self.destroy()
            return None
        return record

    def touch(self) -> SessionRecord | None:
        """Record activity. Never moves ``expires_at``."""
        record = self.read()
        if record is None:
            return None

        record.last_activity = self.clock()
        self._write(record)
        self._schedule_expiry_check(self.activity_timeout)
        return record

    def extend(self) -> SessionRecord | None:
        """Record activity and grant a fresh full lifetime."""
        record = self.read()
        if record is None:
            return None

        now = self.clock()
        record.last_activity = now
        record.expires_at = now + self.lifetime
        self._write(record)
        self._schedule_expiry_check(self.activity_timeout)
        logger.info(f"Session extended for {record.email}")
        return record

    def destroy(self) -> None:
        """Delete the record and cancel the pending check. Safe to call repeatedly."""
        self.storage.remove(self.key)
        self._cancel_timer()

    def is_valid(self) -> bool:
        return self.read() is not None

    def remaining(self) -> float:
        """Seconds until the absolute expiry, 0 without a valid session."""
        record = self.read()
        if record is None:
            return 0.0
        return max(0.0, record.expires_at - self.clock())

    def validate(self) -> bool:
        """Check the record carries the identity fields it must have."""
        record = self.read()
        if record is None:
            return False

        if not record.session_id or not record.email or not record.user_id:
            logger.warning("Session record missing identity fields, clearing")
            self.destroy()
            return False
        return True

    def subscribe_expired(self, callback: ExpiredCallback) -> Callable[[], None]:
        """Register a callback fired when the expiry check finds the session stale.

        Returns:
            A function that removes the subscription
        """
        self._expired_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._expired_callbacks:
                self._expired_callbacks.remove(callback)

        return unsubscribe

    @property
    def has_pending_check(self) -> bool:
        return self._timer is not None

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _is_stale(self, record: SessionRecord, now: float) -> bool:
        if now > record.expires_at:
            return True
        return now - record.last_activity > self.activity_timeout

    def _load(self) -> SessionRecord | None:
        raw = self.storage.get(self.key)
        if raw is None:
            return None

        try:
            return SessionRecord.model_validate_json(raw)
        except ValidationError:
            # Corrupt local data is treated as no session, never surfaced
            logger.warning("Discarding unreadable session record")
            self.destroy()
            return None

    def _write(self, record: SessionRecord) -> None:
        self.storage.set(self.key, record.model_dump_json())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_expiry_check(self, delay: float) -> None:
        """Replace any pending check with one firing after ``delay`` seconds.

        Without a running event loop (plain synchronous use) no check is
        scheduled; reads still enforce validity.
        """
        self._cancel_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer = loop.call_later(max(0.0, delay), self._on_expiry_check)

    def _on_expiry_check(self) -> None:
        self._timer = None
        record = self._load()
        if record is None:
            return

        now = self.clock()
        if not self._is_stale(record, now):
            # Activity landed through another store or the timer ran early
            idle_deadline = record.last_activity + self.activity_timeout
            self._schedule_expiry_check(min(idle_deadline, record.expires_at) - now)
            return

        logger.info(f"Session for {record.email} expired")
        self.destroy()
        for callback in list(self._expired_callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Session expired callback failed")
