"""Shared fixtures: in-memory database, fake identity provider, fake clock."""

import os

# Must be set before quiz_admin.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SUPABASE_URL"] = "https://project.supabase.test"
os.environ["SUPABASE_ANON_KEY"] = "anon-test-key"
os.environ["MASTER_ADMIN_EMAIL"] = "master@quiz.test"
os.environ["DEV_MODE"] = "true"

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from quiz_admin.auth.identity import AuthStateEmitter  # noqa: E402
from quiz_admin.errors import IdentityError  # noqa: E402
from quiz_admin.session import MemoryStorage, SessionStore  # noqa: E402
from quiz_admin.types import (  # noqa: E402
    AdminRecord,
    AdminStatus,
    AuthEvent,
    AuthSession,
    Identity,
    Role,
)

MASTER_EMAIL = "master@quiz.test"
ADMIN_EMAIL = "host@quiz.test"


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeIdentityProvider(AuthStateEmitter):
    """In-memory identity provider.

    ``tokens`` maps access tokens to identities; ``refresh_tokens`` maps refresh
    tokens to identities; ``session`` is the current provider session.
    """

    def __init__(self) -> None:
        super().__init__()
        self.session: AuthSession | None = None
        self.tokens: dict[str, Identity] = {}
        self.refresh_tokens: dict[str, Identity] = {}
        self.error: Exception | None = None
        self.signed_out_tokens: list[str | None] = []
        self.passwords: dict[str, tuple[str, Identity]] = {}
        self.refresh_count = 0

    def sign_in_as(self, user_id: str, email: str, token: str = "access-1") -> AuthSession:
        identity = Identity(user_id=user_id, email=email)
        self.session = AuthSession(access_token=token, refresh_token=f"r-{token}", user=identity)
        self.tokens[token] = identity
        self.refresh_tokens[f"r-{token}"] = identity
        return self.session

    async def get_current_session(self) -> AuthSession | None:
        if self.error is not None:
            raise self.error
        return self.session

    async def get_user(self, token: str) -> Identity:
        if self.error is not None:
            raise self.error
        if token not in self.tokens:
            raise IdentityError("Invalid token", status_code=401)
        return self.tokens[token]

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        if self.error is not None:
            raise self.error
        if refresh_token not in self.refresh_tokens:
            raise IdentityError("Invalid refresh token", status_code=400)
        # Rotates like GoTrue: the spent refresh token stops working
        identity = self.refresh_tokens.pop(refresh_token)
        self.refresh_count += 1
        access_token = f"refreshed-{self.refresh_count}"
        self.tokens[access_token] = identity
        self.refresh_tokens[f"r-{access_token}"] = identity
        return AuthSession(
            access_token=access_token, refresh_token=f"r-{access_token}", user=identity
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        if self.error is not None:
            raise self.error
        expected = self.passwords.get(email)
        if expected is None or expected[0] != password:
            raise IdentityError("Invalid login credentials", status_code=400)
        user_id = expected[1].user_id
        session = self.sign_in_as(user_id, email, token=f"token-{user_id}")
        self.emit(AuthEvent.SIGNED_IN, session)
        return session

    async def sign_out(self, access_token: str | None = None) -> None:
        self.signed_out_tokens.append(access_token)
        self.session = None
        self.emit(AuthEvent.SIGNED_OUT, None)


class FakeAdminDirectory:
    def __init__(self, records: dict[str, AdminRecord] | None = None) -> None:
        self.records = records or {}
        self.logins: list[str] = []
        self.error: Exception | None = None

    def add(self, email: str, role: Role = Role.ADMIN, status: AdminStatus = AdminStatus.ACTIVE):
        self.records[email] = AdminRecord(email=email, role=role, status=status)

    async def get_admin_by_email(self, email: str) -> AdminRecord | None:
        if self.error is not None:
            raise self.error
        return self.records.get(email)

    async def record_login(self, email: str) -> None:
        self.logins.append(email)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000_000.0)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage: MemoryStorage, clock: FakeClock) -> SessionStore:
    return SessionStore(storage, lifetime=3600.0, activity_timeout=1800.0, clock=clock)


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def directory() -> FakeAdminDirectory:
    directory = FakeAdminDirectory()
    directory.add(MASTER_EMAIL, Role.MASTER_ADMIN)
    directory.add(ADMIN_EMAIL, Role.ADMIN)
    return directory


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Create all tables in the in-memory database for one test."""
    from quiz_admin.db import Base, engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
