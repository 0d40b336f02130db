"""Task Management Auth - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskauth.api import auth_router, health_router
from taskauth.api.errors import register_exception_handlers
from taskauth.core import async_session_maker, engine, settings, setup_logging
from taskauth.core.logging import get_logger

# Import all models to ensure they're registered with Base
from taskauth.models import RefreshToken, TokenBlacklist, User  # noqa: F401
from taskauth.services.auth import SessionManager

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def _token_cleanup_loop(manager: SessionManager, interval: float) -> None:
    """Periodically remove expired refresh tokens and blacklist entries."""
    while True:
        await asyncio.sleep(interval)
        try:
            refresh_removed, blacklist_removed = await manager.cleanup_expired()
            if refresh_removed or blacklist_removed:
                logger.info(
                    f"Cleaned up {refresh_removed} refresh tokens and "
                    f"{blacklist_removed} blacklist entries"
                )
        except Exception:
            logger.exception("Error cleaning up expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(level=settings.log_level, format_type=settings.log_format)  # type: ignore[arg-type]
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    cleanup_task = asyncio.create_task(
        _token_cleanup_loop(
            app.state.session_manager, settings.token_cleanup_interval_seconds
        )
    )
    cleanup_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await engine.dispose()


def create_app(
    session_manager: SessionManager | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without arguments the session manager is backed by the configured
    database. Tests pass their own manager and session factory.
    """
    app = FastAPI(
        title=settings.app_name,
        description="Authentication and session lifecycle for the task management API",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    maker = session_maker or async_session_maker
    app.state.session_maker = maker
    app.state.session_manager = session_manager or SessionManager.from_settings(settings, maker)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)

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
