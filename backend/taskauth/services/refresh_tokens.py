"""Refresh token ledger - durable bookkeeping of refresh-token validity.

The signed refresh token is necessary but not sufficient: a token is only
honoured while its ledger row is unrevoked and unexpired.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Protocol
from uuid import UUID, uuid4

from sqlalchemy import delete, distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskauth.core.config import Settings
from taskauth.models.base import utcnow
from taskauth.models.refresh_token import RefreshToken
from taskauth.services.errors import StorageError
from taskauth.services.storage import run_storage_op

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_TTL = timedelta(days=7)


def new_jti() -> str:
    """Globally unique refresh token identifier."""
    return str(uuid4())


class RefreshTokenLedger(Protocol):
    async def create(
        self, user_id: UUID, device_info: dict[str, Any] | None = None
    ) -> tuple[str, RefreshToken]: ...

    async def find_valid(self, jti: str) -> RefreshToken | None: ...

    async def touch_last_used(self, record_id: UUID) -> None: ...

    async def revoke(self, jti: str) -> bool: ...

    async def revoke_all_for_user(self, user_id: UUID) -> int: ...

    async def cleanup_expired(self) -> int: ...

    async def list_active_for_user(self, user_id: UUID) -> list[RefreshToken]: ...

    async def stats(self) -> dict[str, int]: ...


class SQLRefreshTokenLedger:
    """Refresh token ledger on the ``refresh_tokens`` table.

    Each operation runs in its own short transaction and is bounded by
    ``timeout``. Storage failures raise StorageError, so a lookup that
    cannot be answered rejects the token.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        ttl: timedelta = DEFAULT_REFRESH_TTL,
        timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_maker = session_maker
        self._ttl = ttl
        self._timeout = timeout
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        session_maker: async_sessionmaker[AsyncSession],
        config: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> "SQLRefreshTokenLedger":
        return cls(
            session_maker,
            ttl=timedelta(days=config.jwt_refresh_token_expire_days),
            timeout=config.db_operation_timeout,
            clock=clock,
        )

    async def create(
        self, user_id: UUID, device_info: dict[str, Any] | None = None
    ) -> tuple[str, RefreshToken]:
        """Insert a fresh, unrevoked row and return its jti."""
        now = self._clock()
        jti = new_jti()
        record = RefreshToken(
            jti=jti,
            user_id=user_id,
            device_info=device_info,
            expires_at=now + self._ttl,
            created_at=now,
            last_used_at=now,
            is_revoked=False,
        )

        async def _op() -> RefreshToken:
            async with self._session_maker() as session:
                session.add(record)
                await session.commit()
                return record

        await run_storage_op("refresh_tokens.create", _op, self._timeout)
        return jti, record

    async def find_valid(self, jti: str) -> RefreshToken | None:
        """Return the row only if it is unrevoked and unexpired."""
        now = self._clock()

        async def _op() -> RefreshToken | None:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(RefreshToken).where(
                        RefreshToken.jti == jti,
                        RefreshToken.expires_at > now,
                        RefreshToken.is_revoked.is_(False),
                    )
                )
                return result.scalar_one_or_none()

        return await run_storage_op("refresh_tokens.find_valid", _op, self._timeout)

    async def touch_last_used(self, record_id: UUID) -> None:
        """Best effort: failures are logged and never raised."""
        now = self._clock()

        async def _op() -> None:
            async with self._session_maker() as session:
                await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.id == record_id)
                    .values(last_used_at=now)
                )
                await session.commit()

        try:
            await run_storage_op("refresh_tokens.touch_last_used", _op, self._timeout)
        except StorageError:
            logger.warning(f"Could not update last_used_at for refresh token {record_id}")

    async def revoke(self, jti: str) -> bool:
        """Mark a row revoked.

        Returns True only for the call that actually revoked the row; revoking
        an already revoked row returns False and is not an error.
        """

        async def _op() -> bool:
            async with self._session_maker() as session:
                result = await session.execute(
                    update(RefreshToken)
                    .where(RefreshToken.jti == jti, RefreshToken.is_revoked.is_(False))
                    .values(is_revoked=True)
                )
                await session.commit()
                return result.rowcount > 0  # type: ignore[attr-defined]

        return await run_storage_op("refresh_tokens.revoke", _op, self._timeout)

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        async def _op() -> int:
            async with self._session_maker() as session:
                result = await session.execute(
                    update(RefreshToken)
                    .where(
                        RefreshToken.user_id == user_id,
                        RefreshToken.is_revoked.is_(False),
                    )
                    .values(is_revoked=True)
                )
                await session.commit()
                return result.rowcount  # type: ignore[attr-defined]

        count = await run_storage_op("refresh_tokens.revoke_all_for_user", _op, self._timeout)
        logger.info(f"Revoked {count} refresh tokens for user {user_id}")
        return count

    async def cleanup_expired(self) -> int:
        """Delete expired or revoked rows. Storage reclamation only."""
        now = self._clock()

        async def _op() -> int:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(RefreshToken).where(
                        or_(RefreshToken.expires_at <= now, RefreshToken.is_revoked.is_(True))
                    )
                )
                await session.commit()
                return result.rowcount  # type: ignore[attr-defined]

        return await run_storage_op("refresh_tokens.cleanup_expired", _op, self._timeout)

    async def list_active_for_user(self, user_id: UUID) -> list[RefreshToken]:
        """Active sessions for a user, most recently used first."""
        now = self._clock()

        async def _op() -> list[RefreshToken]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(RefreshToken)
                    .where(
                        RefreshToken.user_id == user_id,
                        RefreshToken.expires_at > now,
                        RefreshToken.is_revoked.is_(False),
                    )
                    .order_by(RefreshToken.last_used_at.desc())
                )
                return list(result.scalars().all())

        return await run_storage_op("refresh_tokens.list_active", _op, self._timeout)

    async def stats(self) -> dict[str, int]:
        now = self._clock()
        active = (RefreshToken.expires_at > now) & RefreshToken.is_revoked.is_(False)

        async def _op() -> dict[str, int]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(
                        func.count(RefreshToken.id),
                        func.count(RefreshToken.id).filter(active),
                        func.count(RefreshToken.id).filter(RefreshToken.is_revoked.is_(True)),
                        func.count(RefreshToken.id).filter(RefreshToken.expires_at <= now),
                        func.count(distinct(RefreshToken.user_id)),
                    )
                )
                total, active_count, revoked, expired, users = result.one()
                return {
                    "total": total,
                    "active": active_count,
                    "revoked": revoked,
                    "expired": expired,
                    "unique_users": users,
                }

        return await run_storage_op("refresh_tokens.stats", _op, self._timeout)
