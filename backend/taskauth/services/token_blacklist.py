"""Blacklist ledger - invalidates access tokens before their natural expiry."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskauth.core.config import Settings
from taskauth.models.base import utcnow
from taskauth.models.token_blacklist import BlacklistReason, TokenBlacklist
from taskauth.services.errors import StorageError
from taskauth.services.storage import run_storage_op
from taskauth.services.tokens import hash_token, peek_expiry

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_WINDOW = timedelta(hours=24)
# Lifetime of a per-user revocation marker; matches the refresh token TTL
DEFAULT_MARKER_WINDOW = timedelta(days=7)


class TokenBlacklistLedger(Protocol):
    async def add(
        self,
        raw_token: str,
        user_id: UUID | None,
        reason: BlacklistReason = BlacklistReason.LOGOUT,
    ) -> bool: ...

    async def is_blacklisted(self, raw_token: str) -> bool: ...

    async def revoke_all_for_user(
        self, user_id: UUID, reason: BlacklistReason = BlacklistReason.FORCED_LOGOUT
    ) -> bool: ...

    async def cleanup_expired(self) -> int: ...

    async def stats(self) -> dict[str, int]: ...


def user_revocation_marker(user_id: UUID, at: datetime) -> str:
    """Synthetic hash value recorded when all of a user's tokens are revoked.

    Already-issued access tokens cannot be enumerated, so the marker does not
    match any real token hash. Those tokens stay valid until they expire.
    """
    return f"user_revocation:{user_id}:{int(at.timestamp())}"


class SQLTokenBlacklist:
    """Blacklist ledger on the ``token_blacklist`` table.

    ``is_blacklisted`` fails open: if storage is unavailable the token is
    treated as not blacklisted so that a database outage does not reject all
    authenticated traffic. Set ``fail_closed`` to reject instead, at the cost
    of availability.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        fallback_window: timedelta = DEFAULT_FALLBACK_WINDOW,
        marker_window: timedelta = DEFAULT_MARKER_WINDOW,
        fail_closed: bool = False,
        timeout: float = 5.0,
        token_hasher: Callable[[str], str] = hash_token,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_maker = session_maker
        self._fallback_window = fallback_window
        self._marker_window = marker_window
        self._fail_closed = fail_closed
        self._timeout = timeout
        self._hash = token_hasher
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        session_maker: async_sessionmaker[AsyncSession],
        config: Settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> "SQLTokenBlacklist":
        return cls(
            session_maker,
            fallback_window=timedelta(hours=config.blacklist_fallback_hours),
            marker_window=timedelta(days=config.jwt_refresh_token_expire_days),
            fail_closed=config.blacklist_fail_closed,
            timeout=config.db_operation_timeout,
            clock=clock,
        )

    async def _insert(self, entry: TokenBlacklist, operation: str) -> bool:
        async def _op() -> bool:
            async with self._session_maker() as session:
                session.add(entry)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    logger.debug(f"Blacklist entry {entry.jti} already present")
                    return False
                return True

        return await run_storage_op(operation, _op, self._timeout)

    async def add(
        self,
        raw_token: str,
        user_id: UUID | None,
        reason: BlacklistReason = BlacklistReason.LOGOUT,
    ) -> bool:
        """Blacklist an access token until its own expiry.

        Returns False when the entry already existed.
        """
        now = self._clock()
        expires_at = peek_expiry(raw_token) or now + self._fallback_window
        entry = TokenBlacklist(
            jti=str(uuid4()),
            token_hash=self._hash(raw_token),
            user_id=user_id,
            expires_at=expires_at,
            revoked_at=now,
            reason=BlacklistReason(reason).value,
        )
        added = await self._insert(entry, "token_blacklist.add")
        if added:
            logger.info(f"Blacklisted access token for user {user_id} (reason={entry.reason})")
        return added

    async def is_blacklisted(self, raw_token: str) -> bool:
        token_hash = self._hash(raw_token)
        now = self._clock()

        async def _op() -> bool:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(TokenBlacklist.id)
                    .where(TokenBlacklist.token_hash == token_hash, TokenBlacklist.expires_at > now)
                    .limit(1)
                )
                return result.scalar_one_or_none() is not None

        try:
            return await run_storage_op("token_blacklist.is_blacklisted", _op, self._timeout)
        except StorageError:
            if self._fail_closed:
                raise
            logger.warning("Blacklist check unavailable; treating token as not blacklisted")
            return False

    async def revoke_all_for_user(
        self, user_id: UUID, reason: BlacklistReason = BlacklistReason.FORCED_LOGOUT
    ) -> bool:
        """Record a per-user revocation marker (see user_revocation_marker)."""
        now = self._clock()
        entry = TokenBlacklist(
            jti=str(uuid4()),
            token_hash=user_revocation_marker(user_id, now),
            user_id=user_id,
            expires_at=now + self._marker_window,
            revoked_at=now,
            reason=BlacklistReason(reason).value,
        )
        return await self._insert(entry, "token_blacklist.revoke_all_for_user")

    async def cleanup_expired(self) -> int:
        now = self._clock()

        async def _op() -> int:
            async with self._session_maker() as session:
                result = await session.execute(
                    delete(TokenBlacklist).where(TokenBlacklist.expires_at <= now)
                )
                await session.commit()
                return result.rowcount  # type: ignore[attr-defined]

        return await run_storage_op("token_blacklist.cleanup_expired", _op, self._timeout)

    async def stats(self) -> dict[str, int]:
        now = self._clock()

        async def _op() -> dict[str, int]:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(
                        func.count(TokenBlacklist.id),
                        func.count(TokenBlacklist.id).filter(TokenBlacklist.expires_at > now),
                        *[
                            func.count(TokenBlacklist.id).filter(TokenBlacklist.reason == r.value)
                            for r in BlacklistReason
                        ],
                    )
                )
                total, active, *by_reason = result.one()
                stats = {"total": total, "active": active}
                stats.update({r.value: count for r, count in zip(BlacklistReason, by_reason)})
                return stats

        return await run_storage_op("token_blacklist.stats", _op, self._timeout)
