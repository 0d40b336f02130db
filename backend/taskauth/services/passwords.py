"""Password hashing capability (Argon2id)."""

import asyncio
import logging
from typing import Protocol

from argon2 import PasswordHasher as Argon2Hasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from taskauth.core.config import Settings

logger = logging.getLogger(__name__)


class PasswordHasher(Protocol):
    """hash/compare capability; the work factor lives in the implementation."""

    async def hash(self, password: str) -> str: ...

    async def verify(self, password: str, password_hash: str) -> bool: ...

    async def verify_dummy(self, password: str) -> bool: ...


class Argon2PasswordHasher:
    """Argon2id hashing run in a worker thread so it does not block the event loop.

    Defaults: memory 64 MiB, 3 iterations, parallelism 4.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ):
        self._ph = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )
        self._dummy_hash: str | None = None

    @classmethod
    def from_settings(cls, config: Settings) -> "Argon2PasswordHasher":
        return cls(
            time_cost=config.password_hash_time_cost,
            memory_cost=config.password_hash_memory_cost,
            parallelism=config.password_hash_parallelism,
        )

    def hash_sync(self, password: str) -> str:
        return self._ph.hash(password)

    def verify_sync(self, password: str, password_hash: str) -> bool:
        """Constant-time comparison of a password against its hash."""
        try:
            return self._ph.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (InvalidHashError, VerificationError) as e:
            logger.warning(f"Password verification failed on malformed hash: {type(e).__name__}")
            return False

    async def hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hash_sync, password)

    async def verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify_sync, password, password_hash)

    async def verify_dummy(self, password: str) -> bool:
        """Spend the same work as a real verification when the user is unknown."""
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash("dummy-password-for-timing")
        await self.verify(password, self._dummy_hash)
        return False
