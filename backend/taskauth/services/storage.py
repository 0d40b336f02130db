"""Bounded, error-translating execution of storage calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from taskauth.services.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Driver-level failures that are translated to StorageError
STORAGE_EXCEPTIONS: tuple[type[BaseException], ...] = (
    SQLAlchemyError,
    OSError,
    ConnectionError,
    TimeoutError,
)


async def run_storage_op(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    timeout: float,
) -> T:
    """Run ``fn`` with a timeout, translating driver errors to StorageError.

    Raw driver exceptions never reach callers of the ledgers.
    """
    try:
        return await asyncio.wait_for(fn(), timeout=timeout)
    except TimeoutError as e:
        logger.error(f"Storage operation '{operation}' timed out after {timeout}s")
        raise StorageError() from e
    except STORAGE_EXCEPTIONS as e:
        logger.error(f"Storage operation '{operation}' failed: {type(e).__name__}: {e}")
        raise StorageError() from e
