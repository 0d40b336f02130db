"""In-memory credential store and ledgers.

Same contracts as the SQL implementations, for tests and for running the
service without a database. State lives in dicts on the instance.
"""

from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from taskauth.models.base import utcnow
from taskauth.models.refresh_token import RefreshToken
from taskauth.models.token_blacklist import BlacklistReason, TokenBlacklist
from taskauth.models.user import User
from taskauth.services.credentials import coerce_uuid, normalize_email
from taskauth.services.errors import UserExistsError
from taskauth.services.passwords import PasswordHasher
from taskauth.services.refresh_tokens import DEFAULT_REFRESH_TTL, new_jti
from taskauth.services.roles import Role, normalize_role
from taskauth.services.token_blacklist import (
    DEFAULT_FALLBACK_WINDOW,
    DEFAULT_MARKER_WINDOW,
    user_revocation_marker,
)
from taskauth.services.tokens import hash_token, peek_expiry


class InMemoryCredentialStore:
    def __init__(self, hasher: PasswordHasher, clock: Callable[[], datetime] = utcnow):
        self._hasher = hasher
        self._clock = clock
        self.users: dict[UUID, User] = {}

    async def find_by_id(self, user_id: Any) -> User | None:
        uid = coerce_uuid(user_id)
        user = self.users.get(uid) if uid is not None else None
        if user is None or user.status != "active":
            return None
        return user

    async def find_by_email(self, email: str) -> User | None:
        address = normalize_email(email)
        for user in self.users.values():
            if user.email == address and user.status == "active":
                return user
        return None

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
        address = normalize_email(email)
        name = username.strip()
        if any(u.email == address or u.username == name for u in self.users.values()):
            raise UserExistsError()
        now = self._clock()
        user = User(
            id=uuid4(),
            email=address,
            username=name,
            password_hash=await self._hasher.hash(password),
            role=normalize_role(role).value,
            is_verified=is_verified,
            status="active",
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        return user

    async def mark_verified(self, user_id: Any) -> User | None:
        user = await self.find_by_id(user_id)
        if user is None:
            return None
        user.is_verified = True
        user.updated_at = self._clock()
        return user

    def set_status(self, user_id: UUID, status: str) -> None:
        """Suspend or delete a user (status transition only)."""
        self.users[user_id].status = status


class InMemoryRefreshTokenLedger:
    def __init__(
        self,
        ttl: timedelta = DEFAULT_REFRESH_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._ttl = ttl
        self._clock = clock
        self.records: dict[str, RefreshToken] = {}

    def _is_valid(self, record: RefreshToken, now: datetime) -> bool:
        return not record.is_revoked and record.expires_at > now

    async def create(
        self, user_id: UUID, device_info: dict[str, Any] | None = None
    ) -> tuple[str, RefreshToken]:
        now = self._clock()
        jti = new_jti()
        record = RefreshToken(
            id=uuid4(),
            jti=jti,
            user_id=user_id,
            device_info=device_info,
            expires_at=now + self._ttl,
            created_at=now,
            last_used_at=now,
            is_revoked=False,
        )
        self.records[jti] = record
        return jti, record

    async def find_valid(self, jti: str) -> RefreshToken | None:
        record = self.records.get(jti)
        if record is None or not self._is_valid(record, self._clock()):
            return None
        return record

    async def touch_last_used(self, record_id: UUID) -> None:
        for record in self.records.values():
            if record.id == record_id:
                record.last_used_at = self._clock()
                return

    async def revoke(self, jti: str) -> bool:
        record = self.records.get(jti)
        if record is None or record.is_revoked:
            return False
        record.is_revoked = True
        return True

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        count = 0
        for record in self.records.values():
            if record.user_id == user_id and not record.is_revoked:
                record.is_revoked = True
                count += 1
        return count

    async def cleanup_expired(self) -> int:
        now = self._clock()
        stale = [jti for jti, r in self.records.items() if not self._is_valid(r, now)]
        for jti in stale:
            del self.records[jti]
        return len(stale)

    async def list_active_for_user(self, user_id: UUID) -> list[RefreshToken]:
        now = self._clock()
        active = [
            r for r in self.records.values() if r.user_id == user_id and self._is_valid(r, now)
        ]
        return sorted(active, key=lambda r: r.last_used_at, reverse=True)

    async def stats(self) -> dict[str, int]:
        now = self._clock()
        records = list(self.records.values())
        return {
            "total": len(records),
            "active": sum(1 for r in records if self._is_valid(r, now)),
            "revoked": sum(1 for r in records if r.is_revoked),
            "expired": sum(1 for r in records if r.expires_at <= now),
            "unique_users": len({r.user_id for r in records}),
        }


class InMemoryTokenBlacklist:
    def __init__(
        self,
        fallback_window: timedelta = DEFAULT_FALLBACK_WINDOW,
        marker_window: timedelta = DEFAULT_MARKER_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._fallback_window = fallback_window
        self._marker_window = marker_window
        self._clock = clock
        self.entries: dict[str, TokenBlacklist] = {}

    def _add_entry(
        self, token_hash: str, user_id: UUID | None, expires_at: datetime, reason: BlacklistReason
    ) -> bool:
        entry = TokenBlacklist(
            id=uuid4(),
            jti=str(uuid4()),
            token_hash=token_hash,
            user_id=user_id,
            expires_at=expires_at,
            revoked_at=self._clock(),
            reason=BlacklistReason(reason).value,
        )
        if entry.jti in self.entries:
            return False
        self.entries[entry.jti] = entry
        return True

    async def add(
        self,
        raw_token: str,
        user_id: UUID | None,
        reason: BlacklistReason = BlacklistReason.LOGOUT,
    ) -> bool:
        expires_at = peek_expiry(raw_token) or self._clock() + self._fallback_window
        return self._add_entry(hash_token(raw_token), user_id, expires_at, reason)

    async def is_blacklisted(self, raw_token: str) -> bool:
        token_hash = hash_token(raw_token)
        now = self._clock()
        return any(
            e.token_hash == token_hash and e.expires_at > now for e in self.entries.values()
        )

    async def revoke_all_for_user(
        self, user_id: UUID, reason: BlacklistReason = BlacklistReason.FORCED_LOGOUT
    ) -> bool:
        now = self._clock()
        return self._add_entry(
            user_revocation_marker(user_id, now), user_id, now + self._marker_window, reason
        )

    async def cleanup_expired(self) -> int:
        now = self._clock()
        stale = [jti for jti, e in self.entries.items() if e.expires_at <= now]
        for jti in stale:
            del self.entries[jti]
        return len(stale)

    async def stats(self) -> dict[str, int]:
        now = self._clock()
        entries = list(self.entries.values())
        stats = {
            "total": len(entries),
            "active": sum(1 for e in entries if e.expires_at > now),
        }
        for reason in BlacklistReason:
            stats[reason.value] = sum(1 for e in entries if e.reason == reason.value)
        return stats
