"""FastAPI application: admin auth API behind the edge route authorizer."""

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quiz_admin.auth.admins import AdminDirectory, SqlAdminDirectory
from quiz_admin.auth.identity import SupabaseAuthClient
from quiz_admin.config import settings
from quiz_admin.errors import AppError
from quiz_admin.logging_config import setup_dev_logging, setup_production_logging
from quiz_admin.middleware import ProviderFactory, RouteAuthorizer, RouteAuthorizerMiddleware
from quiz_admin.rate_limiter import RateLimiters
from quiz_admin.routes import create_api_router

logger = logging.getLogger(__name__)


async def run_migrations() -> None:
    """Run database migrations on startup."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config("alembic.ini")
    await asyncio.to_thread(command.upgrade, alembic_cfg, "head")
    logger.info("Database migrations completed")


@asynccontextmanager
async def lifespan(_app: FastAPI):  # type: ignore[no-untyped-def]
    logger.info("=== Server startup initiated ===")

    if not settings.identity_configured:
        logger.warning("Identity provider not configured, protected routes will redirect to login")
    if not settings.master_admin_email:
        logger.warning("MASTER_ADMIN_EMAIL not set")

    await run_migrations()
    logger.info("=== Server startup completed ===")

    yield

    logger.info("Server shutdown")


def create_app(
    provider_factory: ProviderFactory | None = None,
    directory: AdminDirectory | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        provider_factory: Builds an identity provider per request
        directory: Admin record lookup shared by the edge check and login
    """
    provider_factory = provider_factory or SupabaseAuthClient
    directory = directory or SqlAdminDirectory()

    application = FastAPI(
        title="Quiz Admin",
        description="Quiz show admin console access layer",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.provider_factory = provider_factory
    application.state.directory = directory
    application.state.rate_limiters = RateLimiters.from_settings()

    application.add_middleware(
        RouteAuthorizerMiddleware,
        authorizer=RouteAuthorizer(provider_factory, directory),
    )
    application.include_router(create_api_router())

    @application.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if not exc.is_operational:
            logger.error(f"Non-operational error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Global exception handler to log all unhandled errors
    @application.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}\n{''.join(tb)}"
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    return application


if settings.dev_mode:
    setup_dev_logging(json_format=settings.log_json)
else:
    setup_production_logging()

app = create_app()


def main() -> None:
    uvicorn.run(
        "quiz_admin.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.dev_mode,
    )


if __name__ == "__main__":
    main()
