"""User model - identity record owned by the credential store."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Enum, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taskauth.models.base import BaseModel

if TYPE_CHECKING:
    from taskauth.models.refresh_token import RefreshToken

UserRole = Enum(
    "user",
    "manager",
    "admin",
    name="user_role",
    create_constraint=True,
)

# Users are never hard-deleted; "deleted" is a terminal status
UserStatus = Enum(
    "active",
    "suspended",
    "deleted",
    name="user_status",
    create_constraint=True,
)


class User(BaseModel):
    """Application user.

    Lookups used by authentication only return users whose status is
    ``active``, so suspended and deleted accounts behave as if absent.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(UserRole, nullable=False, default="user")
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(UserStatus, nullable=False, default="active", index=True)

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(
        "RefreshToken",
        back_populates="user",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.role})>"
