"""Task Management Auth Database Configuration - Async SQLAlchemy."""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from taskauth.core.config import Settings, settings


def engine_options(config: Settings) -> dict[str, Any]:
    """Build create_async_engine() keyword arguments for a configuration.

    SQLite (used for local development and tests) does not accept the
    queue pool sizing arguments.
    """
    options: dict[str, Any] = {
        "echo": config.debug and config.log_level == "DEBUG",
    }
    if not config.database_url.startswith("sqlite"):
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_timeout=config.db_pool_timeout,
            pool_recycle=config.db_pool_recycle,
            pool_pre_ping=True,  # Verify connection before use
        )
    return options


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the SQL-backed stores.

    expire_on_commit is disabled: records returned by the stores are read
    after their session has closed.
    """
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session_maker = create_session_maker(engine)

# Base class for models
Base = declarative_base()


async def check_db_connection(session_maker: async_sessionmaker[AsyncSession] | None = None) -> bool:
    """Check if database is reachable."""
    maker = session_maker or async_session_maker
    try:
        async with maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        from taskauth.core.logging import get_logger

        get_logger("database").debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        from taskauth.core.logging import get_logger

        get_logger("database").warning(f"Unexpected error checking database connection: {e}")
        return False
