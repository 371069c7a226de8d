"""Tests for the edge route authorizer."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from quiz_admin.errors import IdentityError
from quiz_admin.main import create_app
from quiz_admin.middleware import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    SECURITY_HEADERS,
    is_master_admin_route,
    is_protected,
)
from quiz_admin.types import AdminStatus
from tests.conftest import ADMIN_EMAIL, MASTER_EMAIL, FakeAdminDirectory, FakeIdentityProvider

LOGIN_URL = "http://testserver/login"


@pytest.fixture
def app(provider: FakeIdentityProvider, directory: FakeAdminDirectory) -> FastAPI:
    provider.sign_in_as("user-1", ADMIN_EMAIL, token="admin-token")
    provider.sign_in_as("m-1", MASTER_EMAIL, token="master-token")
    return create_app(provider_factory=lambda: provider, directory=directory)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app, follow_redirects=False)


class TestRouteMatching:
    @pytest.mark.parametrize(
        "path",
        ["/dashboard", "/dashboard/stats", "/api", "/api/questions", "/team-setup/1"],
    )
    def test_protected(self, path: str) -> None:
        assert is_protected(path)

    @pytest.mark.parametrize("path", ["/", "/login", "/health", "/dashboards", "/apiary"])
    def test_unprotected(self, path: str) -> None:
        assert not is_protected(path)

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/master-dashboard", True),
            ("/admin-management/new", True),
            ("/quick-add", True),
            ("/dashboard", False),
            ("/team-setup", False),
            ("/api/questions", False),
        ],
    )
    def test_master_admin_routes(self, path: str, expected: bool) -> None:
        assert is_master_admin_route(path) is expected


class TestUnauthenticated:
    def test_public_route_passes(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        assert "X-Frame-Options" not in response.headers

    def test_no_cookies_redirects_with_return_path(self, client: TestClient) -> None:
        response = client.get("/dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == f"{LOGIN_URL}?redirect=%2Fdashboard"

    def test_invalid_token_redirects_with_return_path(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "forged")
        response = client.get("/master-dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == f"{LOGIN_URL}?redirect=%2Fmaster-dashboard"

    def test_provider_error_redirects(
        self, client: TestClient, provider: FakeIdentityProvider
    ) -> None:
        provider.error = IdentityError("Identity provider unreachable")
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.status_code == 307
        assert response.headers["location"].startswith(LOGIN_URL)

    def test_misconfigured_provider_redirects_without_return_path(
        self, directory: FakeAdminDirectory
    ) -> None:
        def factory() -> FakeIdentityProvider:
            raise IdentityError("Supabase URL and anon key must be configured")

        client = TestClient(create_app(factory, directory), follow_redirects=False)
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.headers["location"] == LOGIN_URL


class TestAuthorization:
    def test_admin_reaches_dashboard(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.status_code == 200
        assert response.json() == {"page": "dashboard", "email": ADMIN_EMAIL, "role": "admin"}
        for name, value in SECURITY_HEADERS.items():
            assert response.headers[name] == value

    def test_refresh_cookie_alone_is_enough(self, client: TestClient) -> None:
        client.cookies.set(REFRESH_TOKEN_COOKIE, "r-admin-token")

        response = client.get("/dashboard")

        assert response.status_code == 200
        assert response.json()["email"] == ADMIN_EMAIL

    def test_refresh_writes_rotated_tokens(
        self, client: TestClient, provider: FakeIdentityProvider
    ) -> None:
        client.cookies.set(REFRESH_TOKEN_COOKIE, "r-admin-token")

        response = client.get("/dashboard")

        assert response.status_code == 200
        assert response.cookies[ACCESS_TOKEN_COOKIE] == "refreshed-1"
        assert response.cookies[REFRESH_TOKEN_COOKIE] == "r-refreshed-1"
        assert "r-admin-token" not in provider.refresh_tokens

        # The spent token no longer works, the rotated one does
        client.cookies.clear()
        client.cookies.set(REFRESH_TOKEN_COOKIE, "r-admin-token")
        assert client.get("/dashboard").status_code == 307

        client.cookies.clear()
        client.cookies.set(REFRESH_TOKEN_COOKIE, "r-refreshed-1")
        response = client.get("/dashboard")
        assert response.status_code == 200
        assert response.cookies[REFRESH_TOKEN_COOKIE] == "r-refreshed-2"

    def test_access_token_sets_no_cookies(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.headers.get("set-cookie") is None

    def test_admin_refused_master_route(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/master-dashboard")

        assert response.status_code == 307
        assert response.headers["location"] == "http://testserver/dashboard"

    def test_master_admin_reaches_master_route(self, client: TestClient) -> None:
        client.cookies.set(ACCESS_TOKEN_COOKIE, "master-token")

        response = client.get("/master-dashboard")

        assert response.status_code == 200
        assert response.json()["role"] == "master_admin"

    def test_inactive_admin_sent_to_login(
        self, client: TestClient, directory: FakeAdminDirectory
    ) -> None:
        directory.add(ADMIN_EMAIL, status=AdminStatus.INACTIVE)
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.headers["location"] == LOGIN_URL

    def test_identity_without_admin_record(
        self, client: TestClient, provider: FakeIdentityProvider
    ) -> None:
        provider.sign_in_as("g-1", "guest@quiz.test", token="guest-token")
        client.cookies.set(ACCESS_TOKEN_COOKIE, "guest-token")

        response = client.get("/dashboard")

        assert response.headers["location"] == LOGIN_URL

    def test_directory_failure_sent_to_login(
        self, client: TestClient, directory: FakeAdminDirectory
    ) -> None:
        directory.error = RuntimeError("database unavailable")
        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")

        response = client.get("/dashboard")

        assert response.headers["location"] == LOGIN_URL

    def test_unknown_protected_path_is_checked_before_404(self, client: TestClient) -> None:
        response = client.get("/api/questions")
        assert response.status_code == 307

        client.cookies.set(ACCESS_TOKEN_COOKIE, "admin-token")
        response = client.get("/api/questions")
        assert response.status_code == 404
        assert response.headers["X-Content-Type-Options"] == "nosniff"
