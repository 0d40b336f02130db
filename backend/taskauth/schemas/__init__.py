# Task Management Auth Pydantic Schemas
from taskauth.schemas.auth import (
    ForceLogoutRequest,
    ForceLogoutResponse,
    LoginRequest,
    LogoutRequest,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    SessionResponse,
    TokenInfoResponse,
    TokenResponse,
    UserResponse,
)

__all__ = [
    "ForceLogoutRequest",
    "ForceLogoutResponse",
    "LoginRequest",
    "LogoutRequest",
    "MessageResponse",
    "RefreshRequest",
    "RefreshResponse",
    "RegisterRequest",
    "SessionResponse",
    "TokenInfoResponse",
    "TokenResponse",
    "UserResponse",
]
