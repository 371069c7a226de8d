"""Liveness and build info. Neither path is behind the route authorizer."""

import os
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version

from fastapi import APIRouter

from quiz_admin.config import settings

SERVICE_NAME = "quiz-admin"

router = APIRouter()


def _installed_version() -> str:
    try:
        return package_version(SERVICE_NAME)
    except PackageNotFoundError:
        return "dev"


@router.get("/health")
async def health() -> dict[str, str | bool]:
    """Liveness check, plus whether an identity provider is configured for sign-in."""
    return {"status": "ok", "identity_configured": settings.identity_configured}


@router.get("/version")
async def version() -> dict[str, str | None]:
    return {
        "service": SERVICE_NAME,
        "version": os.environ.get("APP_VERSION") or _installed_version(),
        "commit": os.environ.get("APP_COMMIT"),
    }
