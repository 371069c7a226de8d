"""Pydantic schemas for authentication endpoints."""

from pydantic import BaseModel, Field

from quiz_admin.session.store import SessionRecord


class LoginRequest(BaseModel):
    """Request body for admin sign-in."""

    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=128)


class LoginResponse(BaseModel):
    """Local session record for the client to keep under ``quiz_session``."""

    session: SessionRecord
    redirect: str = "/dashboard"


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class RateLimitInfo(BaseModel):
    attempts: int
    remaining_seconds: int


class DebugResponse(BaseModel):
    """Auth state snapshot for troubleshooting sign-in problems."""

    has_access_token: bool
    has_refresh_token: bool
    provider_email: str | None = None
    provider_error: str | None = None
    master_admin_configured: bool
    identity_configured: bool
    login_rate_limit: RateLimitInfo | None = None
