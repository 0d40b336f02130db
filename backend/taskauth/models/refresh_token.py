"""Refresh token ledger rows - the source of truth for refresh-token validity."""

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskauth.core.database import Base
from taskauth.models.base import utcnow

if TYPE_CHECKING:
    from taskauth.models.user import User


class RefreshToken(Base):
    """One row per login/device.

    The signed refresh token only carries ``jti``; a row is valid while
    ``is_revoked`` is false and ``expires_at`` is in the future. Rows are
    never reused: a fresh jti is generated for every login.
    """

    __tablename__ = "refresh_tokens"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    jti: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    # User agent / IP captured at login
    device_info: Mapped[dict[str, Any] | None] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    user: Mapped["User"] = relationship("User", back_populates="refresh_tokens", lazy="raise")

    __table_args__ = (Index("ix_refresh_tokens_user_revoked", "user_id", "is_revoked"),)

    def __repr__(self) -> str:
        return f"<RefreshToken {self.jti} user={self.user_id} revoked={self.is_revoked}>"
