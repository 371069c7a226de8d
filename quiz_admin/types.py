"""Shared types for the quiz admin access layer."""

from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    """Privilege tiers. There is exactly one master admin, chosen by configuration."""

    MASTER_ADMIN = "master_admin"
    ADMIN = "admin"


class AdminStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Identity(BaseModel):
    """A live identity as reported by the identity provider."""

    user_id: str
    email: str = ""


class AuthSession(BaseModel):
    """Provider-side session: tokens plus the identity they resolve to."""

    access_token: str
    refresh_token: str = ""
    expires_at: float | None = None
    user: Identity


class AdminRecord(BaseModel):
    """Backend-side authorization state for an identity."""

    email: str
    role: Role
    status: AdminStatus

    @property
    def is_active(self) -> bool:
        return self.status == AdminStatus.ACTIVE


class AuthEvent(str, Enum):
    """Identity provider state change notifications."""

    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


def role_for_email(email: str | None, master_admin_email: str) -> Role:
    """Derive a role by comparing against the configured master admin address.

    This deliberately bypasses the admins table for the master identity.
    """
    if master_admin_email and email == master_admin_email:
        return Role.MASTER_ADMIN
    return Role.ADMIN
