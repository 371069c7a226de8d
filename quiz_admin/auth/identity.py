"""Identity provider interface and the Supabase (GoTrue) client.

The provider is ground truth for whether a credential is currently live.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from quiz_admin.config import settings
from quiz_admin.errors import IdentityError
from quiz_admin.session.storage import SessionStorage
from quiz_admin.types import AuthEvent, AuthSession, Identity

logger = logging.getLogger(__name__)

AUTH_TOKEN_KEY = "sb-auth-token"

AuthStateCallback = Callable[[AuthEvent, AuthSession | None], None]


class IdentityProvider(Protocol):
    """What the access layer needs from the identity service."""

    async def get_current_session(self) -> AuthSession | None: ...

    async def get_user(self, token: str) -> Identity: ...

    async def refresh_session(self, refresh_token: str) -> AuthSession: ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]: ...


class AuthStateEmitter:
    """Fan-out of auth state events to subscribers."""

    def __init__(self) -> None:
        self._callbacks: list[AuthStateCallback] = []

    def on_auth_state_change(self, callback: AuthStateCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, event: AuthEvent, session: AuthSession | None) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event, session)
            except Exception:
                logger.exception(f"Auth state callback failed for {event.value}")


def _parse_identity(data: dict[str, Any]) -> Identity:
    try:
        return Identity(user_id=str(data["id"]), email=data.get("email") or "")
    except (KeyError, TypeError) as e:
        raise IdentityError("Identity provider returned no user") from e


def _parse_session(data: dict[str, Any]) -> AuthSession:
    if not data.get("access_token") or not isinstance(data.get("user"), dict):
        raise IdentityError("Identity provider returned an incomplete session")

    try:
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in") is not None:
            expires_at = time.time() + float(data["expires_in"])

        return AuthSession(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or "",
            expires_at=expires_at,
            user=_parse_identity(data["user"]),
        )
    except (TypeError, ValueError, ValidationError) as e:
        raise IdentityError("Identity provider returned a malformed session") from e


class SupabaseAuthClient(AuthStateEmitter):
    """Async client for the Supabase GoTrue REST API.

    When given a storage backend the current session survives process
    restarts, the way the browser SDK keeps it in localStorage.

    Args:
        url: Project URL (e.g. https://xyz.supabase.co)
        anon_key: Public anon key sent as the ``apikey`` header
        storage: Optional persistence for the current provider session
        transport: Optional httpx transport (injectable for testing)
    """

    def __init__(
        self,
        url: str | None = None,
        anon_key: str | None = None,
        *,
        storage: SessionStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
    ) -> None:
        super().__init__()
        self.url = (url if url is not None else settings.supabase_url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self.storage = storage
        self._transport = transport
        self._timeout = settings.identity_timeout_seconds if timeout is None else timeout
        self._session: AuthSession | None = None

        if not self.url or not self.anon_key:
            raise IdentityError("Supabase URL and anon key must be configured")

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}/auth/v1",
            headers={"apikey": self.anon_key},
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            async with self._client() as client:
                response = await client.request(
                    method, path, params=params, json=json, headers=headers
                )
        except httpx.HTTPError as e:
            raise IdentityError(f"Identity provider unreachable: {e}") from e

        if response.status_code >= 400:
            raise IdentityError(
                f"Identity provider rejected {method} {path}: {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise IdentityError("Identity provider returned invalid JSON") from e

    # -------------------------------------------------------------------------
    # Provider session
    # -------------------------------------------------------------------------

    def _store_session(self, session: AuthSession | None) -> None:
        self._session = session
        if self.storage is None:
            return
        if session is None:
            self.storage.remove(AUTH_TOKEN_KEY)
        else:
            self.storage.set(AUTH_TOKEN_KEY, session.model_dump_json())

    def _load_session(self) -> AuthSession | None:
        if self._session is not None or self.storage is None:
            return self._session

        raw = self.storage.get(AUTH_TOKEN_KEY)
        if raw is None:
            return None
        try:
            self._session = AuthSession.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable provider session")
            self.storage.remove(AUTH_TOKEN_KEY)
            return None
        return self._session

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = _parse_session(data)
        self._store_session(session)
        self.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        session = _parse_session(data)
        self._store_session(session)
        self.emit(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def get_user(self, token: str) -> Identity:
        if not token:
            raise IdentityError("No access token provided")
        data = await self._request("GET", "/user", token=token)
        return _parse_identity(data)

    async def get_current_session(self) -> AuthSession | None:
        """Return the held session, refreshing it once if the access token lapsed.

        Returns None when there is no session or the refresh is refused.
        """
        session = self._load_session()
        if session is None:
            return None

        if session.expires_at is not None and time.time() >= session.expires_at:
            if not session.refresh_token:
                self._store_session(None)
                self.emit(AuthEvent.SIGNED_OUT, None)
                return None
            try:
                return await self.refresh_session(session.refresh_token)
            except IdentityError as e:
                if e.status_code is None:
                    raise
                logger.info(f"Provider session refresh refused: {e}")
                self._store_session(None)
                self.emit(AuthEvent.SIGNED_OUT, None)
                return None
        return session

    async def sign_out(self, access_token: str | None = None) -> None:
        """Revoke the session server-side (best effort) and forget it locally.

        ``access_token`` revokes a token this client does not hold, as on the edge.
        """
        session = self._load_session()
        token = access_token or (session.access_token if session is not None else None)
        if token:
            try:
                await self._request("POST", "/logout", token=token)
            except IdentityError as e:
                logger.warning(f"Provider sign-out failed, clearing locally: {e}")
        self._store_session(None)
        self.emit(AuthEvent.SIGNED_OUT, None)
