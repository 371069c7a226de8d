"""Backend authorization state: admin records and role resolution."""

import logging
from typing import Protocol

from pydantic import BaseModel

from quiz_admin.config import settings
from quiz_admin.db import get_session, repository
from quiz_admin.types import AdminRecord, AdminStatus, Role

logger = logging.getLogger(__name__)


class AdminDirectory(Protocol):
    """Row lookup for an administrative record by email."""

    async def get_admin_by_email(self, email: str) -> AdminRecord | None: ...

    async def record_login(self, email: str) -> None: ...


class SqlAdminDirectory:
    """AdminDirectory over the ``admins`` table."""

    async def get_admin_by_email(self, email: str) -> AdminRecord | None:
        async with get_session() as session:
            admin = await repository.get_admin_by_email(session, email)

        if admin is None:
            return None

        try:
            return AdminRecord(
                email=admin.email, role=Role(admin.role), status=AdminStatus(admin.status)
            )
        except ValueError:
            logger.warning(f"Admin record for {email} has unknown role or status, ignoring")
            return None

    async def record_login(self, email: str) -> None:
        async with get_session() as session:
            await repository.record_login(session, email)


class AdminRoleCheck(BaseModel):
    is_admin: bool
    role: Role | None = None


async def check_admin_role(
    email: str,
    directory: AdminDirectory,
    master_admin_email: str | None = None,
) -> AdminRoleCheck:
    """Decide whether ``email`` belongs to an admin and with which role.

    The configured master admin is recognised before the table is consulted.
    """
    master = settings.master_admin_email if master_admin_email is None else master_admin_email
    if master and email == master:
        return AdminRoleCheck(is_admin=True, role=Role.MASTER_ADMIN)

    record = await directory.get_admin_by_email(email)
    if record is None or not record.is_active:
        return AdminRoleCheck(is_admin=False)
    return AdminRoleCheck(is_admin=True, role=record.role)
