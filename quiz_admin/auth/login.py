"""Login and logout flow.

A login attempt passes the login rate limiter, then the identity provider,
then admin role resolution, and only then writes a local session.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from quiz_admin.activity import log_security_event
from quiz_admin.auth.admins import AdminDirectory, check_admin_role
from quiz_admin.auth.identity import SupabaseAuthClient
from quiz_admin.errors import IdentityError
from quiz_admin.rate_limiter import RateLimiter
from quiz_admin.session.store import SessionRecord, SessionStore
from quiz_admin.types import AuthSession

logger = logging.getLogger(__name__)

SecurityEventSink = Callable[..., Awaitable[None]]


class LoginStatus(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    INVALID_CREDENTIALS = "invalid_credentials"
    NOT_ADMIN = "not_admin"
    UNAVAILABLE = "unavailable"


@dataclass
class LoginResult:
    status: LoginStatus
    session: SessionRecord | None = None
    auth_session: AuthSession | None = None
    retry_after: int = 0

    @property
    def ok(self) -> bool:
        return self.status == LoginStatus.SUCCESS

    @property
    def message(self) -> str:
        if self.status == LoginStatus.RATE_LIMITED:
            minutes = max(1, -(-self.retry_after // 60))
            return f"Too many login attempts. Please try again in {minutes} minute(s)."
        return _MESSAGES[self.status]


_MESSAGES = {
    LoginStatus.SUCCESS: "Signed in",
    LoginStatus.INVALID_CREDENTIALS: "Invalid email or password",
    LoginStatus.NOT_ADMIN: "This account does not have admin access",
    LoginStatus.UNAVAILABLE: "Sign-in is temporarily unavailable. Please try again.",
}


class LoginService:
    """Coordinates the login limiter, provider, admin directory and session store."""

    def __init__(
        self,
        store: SessionStore,
        client: SupabaseAuthClient,
        directory: AdminDirectory,
        limiter: RateLimiter,
        *,
        master_admin_email: str | None = None,
        record_event: SecurityEventSink = log_security_event,
    ) -> None:
        self.store = store
        self.client = client
        self.directory = directory
        self.limiter = limiter
        self.master_admin_email = master_admin_email
        self.record_event = record_event

    async def _event(self, email: str | None, event: str, **details: Any) -> None:
        await self.record_event(email, event, details or None)

    async def login(self, email: str, password: str) -> LoginResult:
        email = email.strip()

        if not self.limiter.is_allowed(email):
            retry_after = self.limiter.get_remaining_time(email)
            logger.warning(f"Login rate limit exceeded for {email}")
            await self._event(email, "rate_limit_exceeded", retry_after=retry_after)
            return LoginResult(status=LoginStatus.RATE_LIMITED, retry_after=retry_after)

        await self._event(email, "login_attempt")

        try:
            auth_session = await self.client.sign_in_with_password(email, password)
        except IdentityError as e:
            if e.status_code is None:
                logger.error(f"Sign-in failed for {email}: {e}")
                return LoginResult(status=LoginStatus.UNAVAILABLE)
            logger.info(f"Sign-in rejected for {email}: {e}")
            await self._event(email, "login_failed", reason="invalid_credentials")
            return LoginResult(status=LoginStatus.INVALID_CREDENTIALS)

        check = await check_admin_role(email, self.directory, self.master_admin_email)
        if not check.is_admin or check.role is None:
            logger.warning(f"Access denied for {email}: not an active admin")
            await self._event(email, "access_denied", reason="not_admin")
            await self.client.sign_out()
            return LoginResult(status=LoginStatus.NOT_ADMIN)

        record = self.store.create(auth_session.user.user_id, email, check.role.value)
        self.limiter.reset(email)

        try:
            await self.directory.record_login(email)
        except Exception as e:
            logger.error(f"Failed to record last login for {email}: {e}")

        await self._event(email, "login_success", role=check.role.value)
        logger.info(f"Admin signed in: {email} (role={check.role.value})")
        return LoginResult(status=LoginStatus.SUCCESS, session=record, auth_session=auth_session)

    async def logout(self) -> None:
        record = self.store.read()
        await self.client.sign_out()
        self.store.destroy()
        if record is not None:
            await self._event(record.email, "logout")
            logger.info(f"Admin signed out: {record.email}")
