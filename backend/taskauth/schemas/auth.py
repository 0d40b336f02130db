"""Pydantic schemas for authentication API."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from taskauth.models.token_blacklist import BlacklistReason

EMAIL_PATTERN = r"^[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}$"


class LoginRequest(BaseModel):
    """Request for login."""

    email: str = Field(..., min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class RegisterRequest(BaseModel):
    """Request for account registration. New accounts start unverified."""

    username: str = Field(
        ...,
        min_length=3,
        max_length=50,
        pattern=r"^[a-zA-Z][a-zA-Z0-9_]*$",
        description="Username (3-50 chars, alphanumeric and underscore, must start with letter)",
    )
    email: str = Field(..., min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)


class UserResponse(BaseModel):
    """Response with user information."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    username: str
    role: str
    is_verified: bool
    status: str
    created_at: datetime | None = None


class TokenResponse(BaseModel):
    """Response with JWT tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")
    user: UserResponse


class RefreshRequest(BaseModel):
    """Request for token refresh."""

    refresh_token: str = Field(..., min_length=1)


class RefreshResponse(BaseModel):
    """Response with a new access token.

    refresh_token is only present when refresh token rotation is enabled.
    """

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiry in seconds")


class LogoutRequest(BaseModel):
    """Request for logout with optional refresh token revocation."""

    refresh_token: str | None = Field(
        None,
        description="Refresh token to revoke. Without it the refresh token stays usable.",
    )


class TokenInfoResponse(BaseModel):
    """Result of verifying an access token."""

    user: UserResponse
    token_info: dict[str, Any]


class SessionResponse(BaseModel):
    """An active refresh-token session."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    jti: str
    device_info: dict[str, Any] | None
    expires_at: datetime
    created_at: datetime
    last_used_at: datetime


class ForceLogoutRequest(BaseModel):
    reason: BlacklistReason = BlacklistReason.FORCED_LOGOUT


class ForceLogoutResponse(BaseModel):
    message: str
    revoked_sessions: int


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
