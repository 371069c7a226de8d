"""Dashboard entry points.

These only report who passed the edge interceptor; page content is rendered
by the front-end.
"""

from fastapi import APIRouter, Request

router = APIRouter()


def _summary(request: Request, page: str) -> dict[str, str | None]:
    admin = getattr(request.state, "admin", None)
    return {
        "page": page,
        "email": admin.email if admin else None,
        "role": admin.role.value if admin else None,
    }


@router.get("/dashboard")
async def dashboard(request: Request) -> dict[str, str | None]:
    return _summary(request, "dashboard")


@router.get("/master-dashboard")
async def master_dashboard(request: Request) -> dict[str, str | None]:
    return _summary(request, "master-dashboard")
