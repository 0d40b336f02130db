"""Blacklisted access tokens - survive process restarts."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from taskauth.core.database import Base
from taskauth.models.base import utcnow


class BlacklistReason(StrEnum):
    LOGOUT = "logout"
    FORCED_LOGOUT = "forced_logout"
    SECURITY_BREACH = "security_breach"


class TokenBlacklist(Base):
    """A revoked access token identified by the SHA-256 hash of its raw value.

    The raw token is never stored. ``jti`` is synthesized per entry.
    Entries carry the token's own expiry and are cleaned up after it.
    """

    __tablename__ = "token_blacklist"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    token_hash: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("users.id"), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    revoked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    reason: Mapped[str] = mapped_column(
        Enum(*[r.value for r in BlacklistReason], name="blacklist_reason", create_constraint=True),
        nullable=False,
        default=BlacklistReason.LOGOUT.value,
    )

    def __repr__(self) -> str:
        return f"<TokenBlacklist {self.jti} reason={self.reason}>"
