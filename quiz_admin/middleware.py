"""Edge request interceptor for protected routes.

Runs before a matched request reaches its route and re-validates identity and
role against the identity provider and the admins table on every request. It
keeps no state between requests and performs no writes.
"""

import logging
from collections.abc import Callable
from urllib.parse import urlencode

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from quiz_admin.auth.admins import AdminDirectory, SqlAdminDirectory
from quiz_admin.auth.guard import DASHBOARD_PATH, LOGIN_PATH
from quiz_admin.auth.identity import IdentityProvider, SupabaseAuthClient
from quiz_admin.config import settings
from quiz_admin.errors import IdentityError
from quiz_admin.types import AuthSession, Identity, Role

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"

PROTECTED_PREFIXES = (
    "/dashboard",
    "/master-dashboard",
    "/admin-management",
    "/activity-logs",
    "/backup-export",
    "/bulk-import",
    "/game-analytics",
    "/quick-add",
    "/team-setup",
    "/api",
)

MASTER_ADMIN_PREFIXES = (
    "/master-dashboard",
    "/admin-management",
    "/activity-logs",
    "/backup-export",
    "/bulk-import",
    "/game-analytics",
    "/quick-add",
)

SECURITY_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

ProviderFactory = Callable[[], IdentityProvider]


def matches_prefix(path: str, prefixes: tuple[str, ...]) -> bool:
    """True if ``path`` is one of ``prefixes`` or lies beneath one."""
    return any(path == prefix or path.startswith(prefix + "/") for prefix in prefixes)


def is_protected(path: str) -> bool:
    return matches_prefix(path, PROTECTED_PREFIXES)


def is_master_admin_route(path: str) -> bool:
    return matches_prefix(path, MASTER_ADMIN_PREFIXES)


def login_redirect(request: Request, return_to: str | None = None) -> RedirectResponse:
    """Redirect to login, optionally carrying the path to come back to."""
    query = urlencode({"redirect": return_to}) if return_to else ""
    return RedirectResponse(str(request.url.replace(path=LOGIN_PATH, query=query)))


def dashboard_redirect(request: Request) -> RedirectResponse:
    return RedirectResponse(str(request.url.replace(path=DASHBOARD_PATH, query="")))


def set_session_cookies(response: Response, auth_session: AuthSession) -> None:
    """Write the provider tokens into the cookies this interceptor reads."""
    options = {
        "max_age": int(settings.session_lifetime_seconds),
        "httponly": True,
        "secure": not settings.dev_mode,
        "samesite": "lax",
    }
    response.set_cookie(ACCESS_TOKEN_COOKIE, auth_session.access_token, **options)
    if auth_session.refresh_token:
        response.set_cookie(REFRESH_TOKEN_COOKIE, auth_session.refresh_token, **options)


class RouteAuthorizer:
    """Per-request policy: tokens -> identity -> admin record -> tier.

    Args:
        provider_factory: Builds a fresh identity provider for each request
        directory: Backend lookup of admin records
    """

    def __init__(
        self,
        provider_factory: ProviderFactory | None = None,
        directory: AdminDirectory | None = None,
    ) -> None:
        self.provider_factory = provider_factory or SupabaseAuthClient
        self.directory = directory or SqlAdminDirectory()

    async def authorize(self, request: Request) -> Response | None:
        """Return a redirect if the request must not proceed, else None."""
        path = request.url.path
        if not is_protected(path):
            return None

        access_token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        if not access_token and not refresh_token:
            return login_redirect(request, path)

        try:
            provider = self.provider_factory()
        except IdentityError as e:
            logger.error(f"Identity provider misconfigured: {e}")
            return login_redirect(request)

        try:
            identity, refreshed = await self._resolve_identity(
                provider, access_token, refresh_token
            )
        except IdentityError as e:
            logger.info(f"Token rejected for {path}: {e}")
            return login_redirect(request, path)

        try:
            admin = await self.directory.get_admin_by_email(identity.email)
        except Exception:
            logger.exception("Auth verification failed")
            return login_redirect(request)

        if admin is None or not admin.is_active:
            logger.warning(f"Access denied for {identity.email}: not an active admin")
            return login_redirect(request)

        if is_master_admin_route(path) and admin.role != Role.MASTER_ADMIN:
            logger.info(f"Master admin route {path} refused for {identity.email}")
            return dashboard_redirect(request)

        request.state.admin = admin
        # Refresh tokens are single use, the caller must receive the rotated pair
        request.state.refreshed_session = refreshed
        return None

    async def _resolve_identity(
        self,
        provider: IdentityProvider,
        access_token: str | None,
        refresh_token: str | None,
    ) -> tuple[Identity, AuthSession | None]:
        refreshed = None
        if access_token:
            identity = await provider.get_user(access_token)
        elif refresh_token:
            refreshed = await provider.refresh_session(refresh_token)
            identity = refreshed.user
        else:
            raise IdentityError("No token provided")

        if not identity.email:
            raise IdentityError("Identity has no email")
        return identity, refreshed


class RouteAuthorizerMiddleware(BaseHTTPMiddleware):
    """Starlette middleware applying RouteAuthorizer and the hardening headers."""

    def __init__(self, app: ASGIApp, authorizer: RouteAuthorizer | None = None) -> None:
        super().__init__(app)
        self.authorizer = authorizer or RouteAuthorizer()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        denial = await self.authorizer.authorize(request)
        if denial is not None:
            return denial

        response = await call_next(request)
        if is_protected(request.url.path):
            for name, value in SECURITY_HEADERS.items():
                response.headers[name] = value

        refreshed = getattr(request.state, "refreshed_session", None)
        if refreshed is not None:
            set_session_cookies(response, refreshed)
        return response
