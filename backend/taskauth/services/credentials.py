"""Credential store - user identity lookup and password verification."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskauth.models.base import utcnow
from taskauth.models.user import User
from taskauth.services.errors import UserExistsError
from taskauth.services.passwords import PasswordHasher
from taskauth.services.roles import Role, normalize_role
from taskauth.services.storage import run_storage_op

logger = logging.getLogger(__name__)


def coerce_uuid(value: Any) -> UUID | None:
    """Parse a user id from a claim or path; None if it is not a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore(Protocol):
    """Identity lookups used by the session manager.

    Both finders return None for suspended and deleted users, so callers
    cannot tell "not found" from "deactivated".
    """

    async def find_by_id(self, user_id: Any) -> User | None: ...

    async def find_by_email(self, email: str) -> User | None: ...

    async def verify_password(self, user: User | None, password: str) -> bool: ...

    async def create_user(
        self,
        *,
        email: str,
        username: str,
        password: str,
        role: Role | str | int = Role.USER,
        is_verified: bool = False,
    ) -> User: ...

    async def mark_verified(self, user_id: Any) -> User | None: ...


class SQLCredentialStore:
    """Credential store backed by the ``users`` table."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        hasher: PasswordHasher,
        *,
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_maker = session_maker
        self._hasher = hasher
        self._timeout = timeout
        self._clock = clock

    async def find_by_id(self, user_id: Any) -> User | None:
        uid = coerce_uuid(user_id)
        if uid is None:
            return None

        async def _op() -> User | None:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(User).where(User.id == uid, User.status == "active")
                )
                return result.scalar_one_or_none()

        return await run_storage_op("users.find_by_id", _op, self._timeout)

    async def find_by_email(self, email: str) -> User | None:
        address = normalize_email(email)

        async def _op() -> User | None:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(User).where(User.email == address, User.status == "active")
                )
                return result.scalar_one_or_none()

        return await run_storage_op("users.find_by_email", _op, self._timeout)

    async def verify_password(self, user: User | None, password: str) -> bool:
        if user is None:
            return await self._hasher.verify_dummy(password)
        return await self._hasher.verify(password, user.password_hash)

    async def create_user(
        self,
        *,
        email: str,
        username: str,
        password: str,
        role: Role | str | int = Role.USER,
        is_verified: bool = False,
    ) -> User:
        password_hash = await self._hasher.hash(password)
        now = self._clock()
        user = User(
            email=normalize_email(email),
            username=username.strip(),
            password_hash=password_hash,
            role=normalize_role(role).value,
            is_verified=is_verified,
            status="active",
            created_at=now,
            updated_at=now,
        )

        async def _op() -> User:
            async with self._session_maker() as session:
                session.add(user)
                try:
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    raise UserExistsError() from e
                await session.refresh(user)
                return user

        created = await run_storage_op("users.create", _op, self._timeout)
        logger.info(f"Created user {created.id} with role {created.role}")
        return created

    async def mark_verified(self, user_id: Any) -> User | None:
        uid = coerce_uuid(user_id)
        if uid is None:
            return None

        async def _op() -> bool:
            async with self._session_maker() as session:
                result = await session.execute(
                    update(User)
                    .where(User.id == uid, User.status == "active")
                    .values(is_verified=True, updated_at=self._clock())
                )
                await session.commit()
                return result.rowcount > 0  # type: ignore[attr-defined]

        if not await run_storage_op("users.mark_verified", _op, self._timeout):
            return None
        return await self.find_by_id(uid)
