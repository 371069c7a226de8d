"""Client-side access gate.

Each mount runs ``CHECKING -> AUTHORIZED | UNAUTHORIZED``. The local session is
a fast cache of validity; the identity provider is asked every mount and its
answer wins. Authentication failures send the caller to the login page,
authorization failures (live identity, wrong tier) to the standard dashboard.

This check is independent of the edge RouteAuthorizer and must stay that way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from quiz_admin.auth.identity import IdentityProvider
from quiz_admin.config import settings
from quiz_admin.session.store import SessionStore
from quiz_admin.types import AuthEvent, AuthSession, Role, role_for_email

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"

Navigate = Callable[[str], None]


class GuardState(str, Enum):
    CHECKING = "checking"
    AUTHORIZED = "authorized"
    UNAUTHORIZED = "unauthorized"


@dataclass
class GuardResult:
    """Outcome of a mount check."""

    state: GuardState
    redirect_to: str | None = None
    email: str | None = None

    @property
    def authorized(self) -> bool:
        return self.state == GuardState.AUTHORIZED


class AccessGate:
    """Guards one page (or command) against the local session and the provider.

    Args:
        store: The caller-owned session store
        provider: Identity provider, ground truth for liveness
        navigate: Called with a path whenever the gate redirects
        require_auth: Redirect to login when unauthenticated
        require_master_admin: Only the master admin may pass
    """

    def __init__(
        self,
        store: SessionStore,
        provider: IdentityProvider,
        *,
        navigate: Navigate | None = None,
        require_auth: bool = False,
        require_master_admin: bool = False,
        master_admin_email: str | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.navigate = navigate
        self.require_auth = require_auth or require_master_admin
        self.require_master_admin = require_master_admin
        self.master_admin_email = (
            settings.master_admin_email if master_admin_email is None else master_admin_email
        )
        self.state = GuardState.CHECKING
        self.email: str | None = None
        self._pathname = "/"
        self._unsubscribers: list[Callable[[], None]] = []

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def mount(self, pathname: str = "/") -> GuardResult:
        """Run the access check for ``pathname`` and start listening for sign-out."""
        self._pathname = pathname
        self.state = GuardState.CHECKING
        if not self._unsubscribers:
            self._unsubscribers.append(self.provider.on_auth_state_change(self._on_auth_event))
            self._unsubscribers.append(self.store.subscribe_expired(self._on_session_expired))
        return await self._check()

    def unmount(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    async def __aenter__(self) -> AccessGate:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.unmount()

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    async def _check(self) -> GuardResult:
        local = self.store.read()

        try:
            session = await self.provider.get_current_session()
        except Exception:
            # Fail closed; the next navigation retries
            logger.exception("Auth check failed")
            return self._deny_authentication(destroy=False)

        if session is None:
            return self._deny_authentication(destroy=True)

        email = session.user.email
        self.email = email or None
        role = role_for_email(email, self.master_admin_email)

        if self.require_master_admin and role != Role.MASTER_ADMIN:
            logger.info(f"Master admin page {self._pathname} refused for {email}")
            self.state = GuardState.UNAUTHORIZED
            return GuardResult(
                state=self.state, redirect_to=self._redirect(DASHBOARD_PATH), email=self.email
            )

        if local is not None and local.user_id == session.user.user_id:
            self.store.touch()
        else:
            # Rebuild local state from the authoritative provider session
            self.store.create(session.user.user_id, email, role.value)

        self.state = GuardState.AUTHORIZED
        return GuardResult(state=self.state, email=self.email)

    def _deny_authentication(self, *, destroy: bool) -> GuardResult:
        if destroy:
            self.store.destroy()
        self.state = GuardState.UNAUTHORIZED
        self.email = None

        redirect_to = None
        if self.require_auth and self._pathname != LOGIN_PATH:
            redirect_to = self._redirect(LOGIN_PATH)
        return GuardResult(state=self.state, redirect_to=redirect_to)

    def _redirect(self, path: str) -> str:
        if self.navigate is not None:
            self.navigate(path)
        return path

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def _on_auth_event(self, event: AuthEvent, session: AuthSession | None) -> None:
        if event == AuthEvent.SIGNED_OUT or session is None:
            logger.info("Signed out, invalidating local session")
            self._deny_authentication(destroy=True)
            return

        if event == AuthEvent.SIGNED_IN:
            role = role_for_email(session.user.email, self.master_admin_email)
            if self.require_master_admin and role != Role.MASTER_ADMIN:
                return
            self.state = GuardState.AUTHORIZED
            self.email = session.user.email or None

    def _on_session_expired(self) -> None:
        logger.info("Local session expired")
        self._deny_authentication(destroy=False)
