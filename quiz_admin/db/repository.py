"""Repository layer for database CRUD operations."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quiz_admin.db.models import ActivityLog, Admin

# =============================================================================
# Admin Repository
# =============================================================================


async def create_admin(
    session: AsyncSession,
    email: str,
    role: str = "admin",
    full_name: str | None = None,
    created_by: str | None = None,
) -> Admin:
    """Create a new active admin."""
    admin = Admin(
        email=email, role=role, status="active", full_name=full_name, created_by=created_by
    )
    session.add(admin)
    await session.flush()
    return admin


async def get_admin_by_email(session: AsyncSession, email: str) -> Admin | None:
    """Get admin by email."""
    result = await session.execute(select(Admin).where(Admin.email == email))
    return result.scalar_one_or_none()


async def get_active_admin_by_email(session: AsyncSession, email: str) -> Admin | None:
    """Get admin by email only if their status is active."""
    result = await session.execute(
        select(Admin).where(Admin.email == email, Admin.status == "active")
    )
    return result.scalar_one_or_none()


async def set_admin_status(session: AsyncSession, email: str, status: str) -> bool:
    """Set an admin's status. Returns True if the admin existed."""
    admin = await get_admin_by_email(session, email)
    if admin is None:
        return False
    admin.status = status
    return True


async def record_login(session: AsyncSession, email: str) -> None:
    """Stamp last_login for an admin, if one exists."""
    admin = await get_admin_by_email(session, email)
    if admin is not None:
        admin.last_login = datetime.now(UTC)


async def list_admins(session: AsyncSession, active_only: bool = False) -> list[Admin]:
    """List admins, optionally filtering to active only."""
    query = select(Admin).order_by(Admin.created_at)
    if active_only:
        query = query.where(Admin.status == "active")
    result = await session.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Activity Log Repository
# =============================================================================


async def create_activity_log(
    session: AsyncSession,
    admin_email: str,
    action: str,
    resource_type: str,
    resource_id: str | None,
    resource_name: str,
    details: dict[str, Any] | None = None,
) -> ActivityLog:
    """Insert an activity log entry."""
    entry = ActivityLog(
        admin_email=admin_email,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        resource_name=resource_name,
        details=details,
    )
    session.add(entry)
    await session.flush()
    return entry


async def list_activity_logs(session: AsyncSession, limit: int = 50) -> list[ActivityLog]:
    """List the most recent activity log entries."""
    result = await session.execute(
        select(ActivityLog).order_by(ActivityLog.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())
