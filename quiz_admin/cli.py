"""CLI for Quiz Admin - sign-in, local session and admin management.

Usage:
    quiz-admin login EMAIL
    quiz-admin status
    quiz-admin touch
    quiz-admin extend
    quiz-admin logout
    quiz-admin reset
    quiz-admin admin list
    quiz-admin admin add EMAIL [--role master_admin]
    quiz-admin admin deactivate EMAIL
"""

import asyncio
import time
from datetime import datetime

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from quiz_admin.auth.admins import SqlAdminDirectory
from quiz_admin.auth.guard import DASHBOARD_PATH, AccessGate, GuardResult
from quiz_admin.auth.identity import SupabaseAuthClient
from quiz_admin.auth.login import LoginResult, LoginService
from quiz_admin.config import settings
from quiz_admin.errors import IdentityError
from quiz_admin.rate_limiter import RateLimiters
from quiz_admin.session import FileStorage, SessionRecord, SessionStore

app = typer.Typer(
    name="quiz-admin",
    help="CLI for the Quiz Admin console",
    add_completion=False,
)
console = Console()


def _storage() -> FileStorage:
    return FileStorage(settings.session_storage_path)


def _client(storage: FileStorage) -> SupabaseAuthClient:
    try:
        return SupabaseAuthClient(storage=storage)
    except IdentityError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def _format_time(ts: float) -> str:
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def _format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs:02d}s"


# =============================================================================
# Session Commands
# =============================================================================


def _login_service() -> LoginService:
    storage = _storage()
    return LoginService(
        SessionStore(storage),
        _client(storage),
        SqlAdminDirectory(),
        RateLimiters.from_settings().login,
    )


async def _login_async(email: str, password: str) -> LoginResult:
    return await _login_service().login(email, password)


@app.command("login")
def login(
    email: str = typer.Argument(..., help="Admin email address"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Account password"),
) -> None:
    """Sign in and start a local session."""
    result = asyncio.run(_login_async(email, password))
    if not result.ok or result.session is None:
        console.print(f"[red]{result.message}[/red]")
        raise typer.Exit(1)

    record = result.session
    console.print(f"[green]Signed in as {record.email} ({record.role})[/green]")
    console.print(f"Session expires at {_format_time(record.expires_at)}")


async def _logout_async() -> None:
    await _login_service().logout()


@app.command("logout")
def logout() -> None:
    """Sign out and clear the local session."""
    asyncio.run(_logout_async())
    console.print("[green]Signed out[/green]")


async def _check_access(
    require_master_admin: bool = False,
) -> tuple[GuardResult, SessionRecord | None]:
    storage = _storage()
    store = SessionStore(storage)
    async with AccessGate(
        store,
        _client(storage),
        require_auth=True,
        require_master_admin=require_master_admin,
    ) as gate:
        result = await gate.mount("/master-dashboard" if require_master_admin else "/dashboard")
    return result, store.read()


@app.command("status")
def status() -> None:
    """Verify the session with the identity provider and show it."""
    result, record = asyncio.run(_check_access())
    if not result.authorized or record is None:
        console.print("[yellow]Not signed in. Run: quiz-admin login EMAIL[/yellow]")
        raise typer.Exit(1)

    now = time.time()
    table = Table(title="Session", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Email", record.email)
    table.add_row("Role", record.role)
    table.add_row("Session ID", record.session_id)
    table.add_row("Signed in", _format_time(record.login_time))
    table.add_row("Expires in", _format_duration(max(0.0, record.expires_at - now)))
    table.add_row(
        "Idle timeout in",
        _format_duration(max(0.0, record.last_activity + settings.activity_timeout_seconds - now)),
    )
    console.print(table)


@app.command("touch")
def touch() -> None:
    """Record activity on the local session."""
    record = SessionStore(_storage()).touch()
    if record is None:
        console.print("[yellow]No valid session[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Activity recorded for {record.email}[/green]")


@app.command("extend")
def extend() -> None:
    """Grant the local session a fresh full lifetime."""
    record = SessionStore(_storage()).extend()
    if record is None:
        console.print("[yellow]No valid session[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]Session extended until {_format_time(record.expires_at)}[/green]")


@app.command("reset")
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Clear all locally stored auth data (session and provider tokens)."""
    if not yes:
        typer.confirm("Clear all local auth data?", abort=True)
    _storage().clear()
    console.print("[green]Local auth data cleared[/green]")


# =============================================================================
# Admin Commands
# =============================================================================

admin_app = typer.Typer(help="Manage admins (master admin only)")
app.add_typer(admin_app, name="admin")


def _require_master_admin() -> str:
    result, _ = asyncio.run(_check_access(require_master_admin=True))
    if result.authorized and result.email:
        return result.email
    if result.redirect_to == DASHBOARD_PATH:
        console.print(f"[red]Master admin access required ({result.email})[/red]")
    else:
        console.print("[red]Not signed in. Run: quiz-admin login EMAIL[/red]")
    raise typer.Exit(1)


async def _list_admins_async() -> list[tuple[str, str, str, str, str | None]]:
    from quiz_admin.db import get_session, repository

    async with get_session() as session:
        admins = await repository.list_admins(session)
        return [
            (
                a.email,
                a.role,
                a.status,
                a.created_at.strftime("%Y-%m-%d %H:%M"),
                a.last_login.strftime("%Y-%m-%d %H:%M") if a.last_login else None,
            )
            for a in admins
        ]


@admin_app.command("list")
def admin_list() -> None:
    """List all admins."""
    _require_master_admin()
    try:
        admins = asyncio.run(_list_admins_async())
    except Exception as e:
        console.print(f"[red]Failed to list admins: {e}[/red]")
        raise typer.Exit(1) from e

    if not admins:
        console.print("[yellow]No admins found[/yellow]")
        return

    table = Table(title="Admins", box=box.ROUNDED)
    table.add_column("Email", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Status")
    table.add_column("Created", style="green")
    table.add_column("Last login", style="dim")

    for email, role, admin_status, created, last_login in admins:
        colour = "green" if admin_status == "active" else "red"
        status_cell = f"[{colour}]{admin_status}[/{colour}]"
        table.add_row(email, role, status_cell, created, last_login or "-")

    console.print(table)


async def _add_admin_async(email: str, role: str, created_by: str) -> bool:
    from quiz_admin.activity import log_activity
    from quiz_admin.db import get_session, repository

    async with get_session() as session:
        if await repository.get_admin_by_email(session, email) is not None:
            return False
        await repository.create_admin(session, email, role=role, created_by=created_by)

    await log_activity(created_by, "create", "auth", email, f"Admin {email}", {"role": role})
    return True


@admin_app.command("add")
def admin_add(
    email: str = typer.Argument(..., help="Email of the new admin"),
    role: str = typer.Option("admin", "--role", "-r", help="admin or master_admin"),
) -> None:
    """Add an active admin."""
    if role not in ("admin", "master_admin"):
        console.print(f"[red]Unknown role: {role}[/red]")
        raise typer.Exit(1)

    actor = _require_master_admin()
    try:
        created = asyncio.run(_add_admin_async(email, role, actor))
    except Exception as e:
        console.print(f"[red]Failed to add admin: {e}[/red]")
        raise typer.Exit(1) from e

    if not created:
        console.print(f"[red]Admin already exists: {email}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Admin added: {email} ({role})[/green]")


async def _set_status_async(email: str, admin_status: str, actor: str) -> bool:
    from quiz_admin.activity import log_activity
    from quiz_admin.db import get_session, repository

    async with get_session() as session:
        found = await repository.set_admin_status(session, email, admin_status)

    if found:
        await log_activity(
            actor, "update", "auth", email, f"Admin {email}", {"status": admin_status}
        )
    return found


@admin_app.command("deactivate")
def admin_deactivate(email: str = typer.Argument(..., help="Email of the admin")) -> None:
    """Deactivate an admin. The edge check refuses them on their next request."""
    actor = _require_master_admin()
    if not asyncio.run(_set_status_async(email, "inactive", actor)):
        console.print(f"[red]Admin not found: {email}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Admin deactivated: {email}[/green]")


@admin_app.command("activate")
def admin_activate(email: str = typer.Argument(..., help="Email of the admin")) -> None:
    """Re-activate an admin."""
    actor = _require_master_admin()
    if not asyncio.run(_set_status_async(email, "active", actor)):
        console.print(f"[red]Admin not found: {email}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Admin activated: {email}[/green]")


if __name__ == "__main__":
    app()
