"""Authentication and authorization for Quiz Admin."""

from quiz_admin.auth.admins import AdminDirectory, SqlAdminDirectory, check_admin_role
from quiz_admin.auth.guard import AccessGate, GuardResult, GuardState
from quiz_admin.auth.identity import IdentityProvider, SupabaseAuthClient
from quiz_admin.auth.login import LoginResult, LoginService, LoginStatus

__all__ = [
    "AccessGate",
    "AdminDirectory",
    "GuardResult",
    "GuardState",
    "IdentityProvider",
    "LoginResult",
    "LoginService",
    "LoginStatus",
    "SqlAdminDirectory",
    "SupabaseAuthClient",
    "check_admin_role",
]
