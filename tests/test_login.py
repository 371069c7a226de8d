"""Tests for the login and logout flow."""

from typing import Any

import pytest

from quiz_admin.auth.admins import check_admin_role
from quiz_admin.auth.login import LoginService, LoginStatus
from quiz_admin.errors import IdentityError
from quiz_admin.rate_limiter import RateLimiter, RateLimiterConfig
from quiz_admin.session import SessionStore
from quiz_admin.types import AdminStatus, Identity, Role
from tests.conftest import ADMIN_EMAIL, MASTER_EMAIL, FakeAdminDirectory, FakeIdentityProvider


class EventSink:
    def __init__(self) -> None:
        self.events: list[tuple[str | None, str, dict[str, Any] | None]] = []

    async def __call__(self, email: str | None, event: str, details: Any = None) -> None:
        self.events.append((email, event, details))

    @property
    def names(self) -> list[str]:
        return [name for _, name, _ in self.events]


@pytest.fixture
def sink() -> EventSink:
    return EventSink()


@pytest.fixture
def limiter() -> RateLimiter:
    return RateLimiter(RateLimiterConfig(max_attempts=5, window_seconds=900.0))


@pytest.fixture
def service(
    store: SessionStore,
    provider: FakeIdentityProvider,
    directory: FakeAdminDirectory,
    limiter: RateLimiter,
    sink: EventSink,
) -> LoginService:
    provider.passwords[ADMIN_EMAIL] = ("secret", Identity(user_id="user-1", email=ADMIN_EMAIL))
    provider.passwords[MASTER_EMAIL] = ("secret", Identity(user_id="m-1", email=MASTER_EMAIL))
    provider.passwords["guest@quiz.test"] = (
        "secret",
        Identity(user_id="g-1", email="guest@quiz.test"),
    )
    return LoginService(
        store,
        provider,  # type: ignore[arg-type]
        directory,
        limiter,
        master_admin_email=MASTER_EMAIL,
        record_event=sink,
    )


class TestCheckAdminRole:
    """Role resolution."""

    @pytest.mark.asyncio
    async def test_master_admin_bypasses_table(self) -> None:
        check = await check_admin_role(MASTER_EMAIL, FakeAdminDirectory(), MASTER_EMAIL)
        assert check.is_admin
        assert check.role == Role.MASTER_ADMIN

    @pytest.mark.asyncio
    async def test_active_admin(self, directory: FakeAdminDirectory) -> None:
        check = await check_admin_role(ADMIN_EMAIL, directory, MASTER_EMAIL)
        assert check.is_admin
        assert check.role == Role.ADMIN

    @pytest.mark.asyncio
    async def test_inactive_admin(self, directory: FakeAdminDirectory) -> None:
        directory.add("gone@quiz.test", status=AdminStatus.INACTIVE)
        check = await check_admin_role("gone@quiz.test", directory, MASTER_EMAIL)
        assert not check.is_admin
        assert check.role is None

    @pytest.mark.asyncio
    async def test_unknown_email(self, directory: FakeAdminDirectory) -> None:
        check = await check_admin_role("nobody@quiz.test", directory, MASTER_EMAIL)
        assert not check.is_admin


class TestLogin:
    """LoginService.login."""

    @pytest.mark.asyncio
    async def test_success(
        self,
        service: LoginService,
        store: SessionStore,
        directory: FakeAdminDirectory,
        sink: EventSink,
    ) -> None:
        result = await service.login(f"  {ADMIN_EMAIL} ", "secret")

        assert result.ok
        assert result.status == LoginStatus.SUCCESS
        assert result.session is not None
        assert result.session.email == ADMIN_EMAIL
        assert result.session.role == "admin"
        assert result.session.user_id == "user-1"
        assert result.auth_session is not None
        assert store.read() == result.session
        assert directory.logins == [ADMIN_EMAIL]
        assert sink.names == ["login_attempt", "login_success"]

    @pytest.mark.asyncio
    async def test_master_admin_role(self, service: LoginService) -> None:
        result = await service.login(MASTER_EMAIL, "secret")
        assert result.session is not None
        assert result.session.role == "master_admin"

    @pytest.mark.asyncio
    async def test_wrong_password(
        self, service: LoginService, store: SessionStore, sink: EventSink
    ) -> None:
        result = await service.login(ADMIN_EMAIL, "wrong")

        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.message == "Invalid email or password"
        assert store.read() is None
        assert sink.names == ["login_attempt", "login_failed"]

    @pytest.mark.asyncio
    async def test_not_an_admin(
        self,
        service: LoginService,
        store: SessionStore,
        provider: FakeIdentityProvider,
        sink: EventSink,
    ) -> None:
        result = await service.login("guest@quiz.test", "secret")

        assert result.status == LoginStatus.NOT_ADMIN
        assert store.read() is None
        assert provider.session is None
        assert sink.names == ["login_attempt", "access_denied"]

    @pytest.mark.asyncio
    async def test_provider_unreachable(
        self, service: LoginService, provider: FakeIdentityProvider
    ) -> None:
        provider.error = IdentityError("Identity provider unreachable")

        result = await service.login(ADMIN_EMAIL, "secret")

        assert result.status == LoginStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_rate_limited_after_five_failures(
        self, service: LoginService, sink: EventSink
    ) -> None:
        for _ in range(5):
            result = await service.login(ADMIN_EMAIL, "wrong")
            assert result.status == LoginStatus.INVALID_CREDENTIALS

        result = await service.login(ADMIN_EMAIL, "secret")

        assert result.status == LoginStatus.RATE_LIMITED
        assert 0 < result.retry_after <= 900
        assert "15 minute(s)" in result.message
        assert sink.events[-1][1] == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_success_resets_limit(
        self, service: LoginService, limiter: RateLimiter
    ) -> None:
        for _ in range(4):
            await service.login(ADMIN_EMAIL, "wrong")

        assert (await service.login(ADMIN_EMAIL, "secret")).ok
        assert limiter.attempts(ADMIN_EMAIL) == 0

    @pytest.mark.asyncio
    async def test_record_login_failure_does_not_block(
        self, service: LoginService, directory: FakeAdminDirectory
    ) -> None:
        async def broken(email: str) -> None:
            raise RuntimeError("database is locked")

        directory.record_login = broken  # type: ignore[method-assign]

        assert (await service.login(ADMIN_EMAIL, "secret")).ok


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_clears_everything(
        self,
        service: LoginService,
        store: SessionStore,
        provider: FakeIdentityProvider,
        sink: EventSink,
    ) -> None:
        await service.login(ADMIN_EMAIL, "secret")

        await service.logout()

        assert store.read() is None
        assert provider.session is None
        assert sink.events[-1] == (ADMIN_EMAIL, "logout", None)

    @pytest.mark.asyncio
    async def test_logout_without_session(
        self, service: LoginService, sink: EventSink
    ) -> None:
        await service.logout()
        assert "logout" not in sink.names
