"""querylab Backend - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from querylab.api import auth_router, health_router, users_router
from querylab.api.errors import register_exception_handlers
from querylab.core import async_session_maker, engine, settings, setup_logging
from querylab.core.logging import get_logger
from querylab.middleware import RequestLoggingMiddleware

# Import all models to ensure they're registered with Base for Alembic
from querylab.models import RevokedToken, User  # noqa: F401
from querylab.services.revocation import (
    RevocationRegistry,
    cleanup_expired_revocations,
    load_active_revocations,
)

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def restore_revocations(
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> int:
    """Reload unexpired revocations from the database into the registry."""
    async with session_maker() as db:
        entries = await load_active_revocations(db)
    return RevocationRegistry.get_instance().load(entries)


async def sweep_revocations(
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> int:
    """Drop expired revocations from the registry and the database."""
    removed = RevocationRegistry.get_instance().cleanup_expired()
    async with session_maker() as db:
        removed_rows = await cleanup_expired_revocations(db)
        await db.commit()
    return max(removed, removed_rows)


async def _revocation_cleanup_loop() -> None:
    """Periodically remove expired entries from the revocation registry."""
    while True:
        await asyncio.sleep(settings.revocation_cleanup_interval_seconds)
        try:
            removed = await sweep_revocations()
            if removed > 0:
                logger.info(f"Cleaned up {removed} expired token revocations")
        except Exception:
            logger.exception("Error cleaning up token revocations")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    try:
        restored = await restore_revocations()
        logger.info(f"Restored {restored} token revocations")
    except Exception:
        # Revocations issued from now on are still enforced
        logger.exception("Could not restore token revocations from database")

    cleanup_task = asyncio.create_task(_revocation_cleanup_loop())
    cleanup_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Document query demo backend with JWT sessions",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    register_exception_handlers(app)

    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware - wraps handled error responses (401, 404, 422);
    # unhandled 500s are rendered by ServerErrorMiddleware outside it
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
        ],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
