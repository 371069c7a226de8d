"""Route modules for the Quiz Admin API."""

from fastapi import APIRouter

from .auth import router as auth_router
from .dashboard import router as dashboard_router
from .health import router as health_router


def create_api_router() -> APIRouter:
    """Create aggregated router with all API routes."""
    api_router = APIRouter()

    api_router.include_router(health_router)
    api_router.include_router(auth_router)
    api_router.include_router(dashboard_router)

    return api_router


__all__ = ["create_api_router"]
