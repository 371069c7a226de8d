"""Authentication API routes."""

import logging
from urllib.parse import urlsplit

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from quiz_admin.activity import log_security_event
from quiz_admin.auth.guard import DASHBOARD_PATH
from quiz_admin.auth.identity import SupabaseAuthClient
from quiz_admin.auth.login import LoginService, LoginStatus
from quiz_admin.auth.schemas import (
    DebugResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RateLimitInfo,
)
from quiz_admin.config import settings
from quiz_admin.errors import IdentityError
from quiz_admin.middleware import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    set_session_cookies,
)
from quiz_admin.rate_limiter import RateLimiters
from quiz_admin.session import MemoryStorage, SessionStore
from quiz_admin.types import Role

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_STATUS_CODES = {
    LoginStatus.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    LoginStatus.NOT_ADMIN: status.HTTP_403_FORBIDDEN,
    LoginStatus.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def safe_redirect(target: str | None, default: str) -> str:
    """Only same-site absolute paths may be returned to after login."""
    if not target or not target.startswith("/"):
        return default
    # Browsers read "\" as "/" and drop tabs and newlines, so "/\host" is "//host"
    if "\\" in target or any(ord(char) < 0x20 for char in target):
        return default
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return default
    return target


def _rate_limited(retry_after: int, detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=detail,
        headers={"Retry-After": str(retry_after)},
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    redirect: str | None = Query(default=None),
) -> LoginResponse:
    """Sign in an admin.

    Sets the provider token cookies the edge interceptor reads and returns the
    local session record. Rate limited per IP and per email.
    """
    limiters: RateLimiters = request.app.state.rate_limiters
    client_ip = request.client.host if request.client else "unknown"

    ip_key = f"ip:{client_ip}"
    if not limiters.api.is_allowed(ip_key):
        raise _rate_limited(
            limiters.api.get_remaining_time(ip_key), "Too many requests. Please try again later."
        )

    try:
        client = request.app.state.provider_factory()
    except IdentityError as e:
        logger.error(f"Sign-in unavailable: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sign-in is not configured",
        ) from e

    # Request-scoped store: the server keeps no session, the client persists it
    service = LoginService(
        SessionStore(MemoryStorage()),
        client,
        request.app.state.directory,
        limiters.login,
    )
    result = await service.login(body.email, body.password)
    # The record is returned to the client; nothing may stay scheduled on the server
    service.store.destroy()

    if result.status == LoginStatus.RATE_LIMITED:
        raise _rate_limited(result.retry_after, result.message)
    if not result.ok or result.session is None or result.auth_session is None:
        raise HTTPException(status_code=_STATUS_CODES[result.status], detail=result.message)

    set_session_cookies(response, result.auth_session)

    default = DASHBOARD_PATH
    if result.session.role == Role.MASTER_ADMIN.value:
        default = "/master-dashboard"
    return LoginResponse(session=result.session, redirect=safe_redirect(redirect, default))


async def _sign_out(client: SupabaseAuthClient, access_token: str) -> None:
    # Resolve the identity first, the token is dead once revoked
    try:
        identity = await client.get_user(access_token)
    except IdentityError as e:
        logger.info(f"Logout with unrecognised token: {e}")
    else:
        await log_security_event(identity.email, "logout")
        logger.info(f"Admin signed out: {identity.email}")

    await client.sign_out(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response) -> MessageResponse:
    """Revoke the provider session (best effort) and clear the token cookies."""
    access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if access_token:
        try:
            client = request.app.state.provider_factory()
        except IdentityError as e:
            logger.warning(f"Provider sign-out skipped: {e}")
        else:
            await _sign_out(client, access_token)

    response.delete_cookie(ACCESS_TOKEN_COOKIE)
    response.delete_cookie(REFRESH_TOKEN_COOKIE)
    return MessageResponse(message="Logged out successfully")


@router.get("/debug", response_model=DebugResponse)
async def debug(request: Request, email: str | None = Query(default=None)) -> DebugResponse:
    """Report auth state for troubleshooting (dev mode only)."""
    if not settings.dev_mode:
        raise HTTPException(status_code=403, detail="Auth debug only available in dev mode")

    access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    result = DebugResponse(
        has_access_token=bool(access_token),
        has_refresh_token=bool(request.cookies.get(REFRESH_TOKEN_COOKIE)),
        master_admin_configured=bool(settings.master_admin_email),
        identity_configured=settings.identity_configured,
    )

    if access_token:
        try:
            identity = await request.app.state.provider_factory().get_user(access_token)
            result.provider_email = identity.email
        except IdentityError as e:
            result.provider_error = str(e)

    if email:
        limiter = request.app.state.rate_limiters.login
        result.login_rate_limit = RateLimitInfo(
            attempts=limiter.attempts(email),
            remaining_seconds=limiter.get_remaining_time(email),
        )

    return result
