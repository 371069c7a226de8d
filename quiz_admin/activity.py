"""Activity and security event logging to the ``activity_logs`` table.

Logging never breaks the caller: failures are written to the application log
and swallowed.
"""

import logging
import re
from datetime import UTC, datetime
from typing import Any, Literal

from quiz_admin.db import get_session, repository
from quiz_admin.errors import AppError, validate_input

logger = logging.getLogger(__name__)

Action = Literal["create", "update", "delete", "login", "logout", "access_denied"]
ResourceType = Literal["category", "question", "auth", "file"]
SecurityEvent = Literal[
    "login_attempt",
    "login_success",
    "login_failed",
    "access_denied",
    "rate_limit_exceeded",
    "logout",
]
Severity = Literal["low", "medium", "high"]

_HTML_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "&": "&amp;",
}
_HTML_CHARS = re.compile(r"[<>\"'&]")
_CONTROL_CHARS = re.compile(r"[\r\n\t]")


def sanitize_input(value: str) -> str:
    """Escape HTML metacharacters and strip CR/LF/TAB (log injection)."""
    if not value or not isinstance(value, str):
        return ""
    escaped = _HTML_CHARS.sub(lambda m: _HTML_ESCAPES[m.group(0)], value)
    return _CONTROL_CHARS.sub("", escaped).strip()


def severity_for(action: str, resource_type: str) -> Severity:
    if action == "delete":
        return "high"
    if resource_type == "auth":
        return "high"
    if action == "create":
        return "medium"
    return "low"


async def log_activity(
    admin_email: str,
    action: Action,
    resource_type: ResourceType,
    resource_id: str,
    resource_name: str,
    details: dict[str, Any] | None = None,
    session_id: str | None = None,
) -> None:
    """Record an admin action with enriched details."""
    try:
        email = validate_input(admin_email, "Admin email")
        rid = validate_input(resource_id, "Resource ID")
        name = validate_input(resource_name, "Resource name")
    except AppError as e:
        logger.error(f"Activity logging rejected input: {e.message}")
        return

    enriched = {
        **(details or {}),
        "timestamp": datetime.now(UTC).isoformat(),
        "session_id": session_id or "anonymous",
        "severity": severity_for(action, resource_type),
    }

    try:
        async with get_session() as session:
            await repository.create_activity_log(
                session,
                admin_email=sanitize_input(email),
                action=action,
                resource_type=resource_type,
                resource_id=sanitize_input(rid),
                resource_name=sanitize_input(name),
                details=enriched,
            )
    except Exception as e:
        logger.error(f"Activity logging failed: {e}")


async def log_security_event(
    admin_email: str | None,
    event: SecurityEvent,
    details: dict[str, Any] | None = None,
) -> None:
    """Record an authentication or authorization event."""
    try:
        async with get_session() as session:
            await repository.create_activity_log(
                session,
                admin_email=sanitize_input(admin_email or "") or "unknown",
                action="access_denied" if event == "access_denied" else "login",
                resource_type="auth",
                resource_id="security-event",
                resource_name=event,
                details={"event": event, "severity": "high", **(details or {})},
            )
    except Exception as e:
        message = _CONTROL_CHARS.sub(" ", str(e))[:200]
        logger.error(f"Security logging failed: {message}")
