"""Authentication API endpoints."""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status

from taskauth.api.deps import (
    get_auth_context,
    get_device_info,
    get_session_manager,
    require_admin,
)
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
from taskauth.services.auth import AuthContext, SessionManager
from taskauth.services.roles import get_role_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    device_info: dict[str, Any] = Depends(get_device_info),
    manager: SessionManager = Depends(get_session_manager),
) -> TokenResponse:
    """Authenticate and get JWT tokens.

    Unverified accounts get 403 EMAIL_NOT_VERIFIED and no tokens.
    """
    tokens = await manager.login(request.email, request.password, device_info)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(tokens.user),
    )


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    """Create a new, unverified user account with the user role."""
    user = await manager.register(
        email=request.email,
        username=request.username,
        password=request.password,
    )
    return UserResponse.model_validate(user)


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_tokens(
    request: RefreshRequest,
    manager: SessionManager = Depends(get_session_manager),
) -> RefreshResponse:
    """Mint a new access token from a refresh token."""
    result = await manager.refresh(request.refresh_token)
    return RefreshResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        token_type=result.token_type,
        expires_in=result.expires_in,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: LogoutRequest | None = None,
    context: AuthContext = Depends(get_auth_context),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Log out the current user.

    Blacklists the current access token for the remainder of its TTL. The
    refresh token is revoked only if it is included in the body.
    """
    await manager.logout(context, request.refresh_token if request else None)
    return MessageResponse(message="Logout successful")


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    context: AuthContext = Depends(get_auth_context),
) -> UserResponse:
    """Get the current user's information."""
    return UserResponse.model_validate(context.user)


@router.post("/verify", response_model=TokenInfoResponse)
async def verify_token(
    context: AuthContext = Depends(get_auth_context),
) -> TokenInfoResponse:
    """Check that the bearer token is valid and return its claims."""
    claims = context.claims
    return TokenInfoResponse(
        user=UserResponse.model_validate(context.user),
        token_info={
            "id": claims.get("id"),
            "email": claims.get("email"),
            "role": claims.get("role"),
            "role_id": get_role_id(claims.get("role")),
            "iat": claims.get("iat"),
            "exp": claims.get("exp"),
        },
    )


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    context: AuthContext = Depends(get_auth_context),
    manager: SessionManager = Depends(get_session_manager),
) -> list[SessionResponse]:
    """List the caller's active refresh-token sessions, most recent first."""
    records = await manager.list_sessions(context.user.id)
    return [SessionResponse.model_validate(record) for record in records]


@router.post("/users/{user_id}/revoke-sessions", response_model=ForceLogoutResponse)
async def revoke_user_sessions(
    user_id: UUID,
    request: ForceLogoutRequest | None = None,
    context: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> ForceLogoutResponse:
    """Forced logout: revoke every refresh token of a user (admin only).

    Access tokens already issued to that user stay valid until they expire.
    """
    reason = request.reason if request else ForceLogoutRequest().reason
    revoked = await manager.force_logout(user_id, reason)
    logger.warning(f"Admin {context.user.id} revoked sessions of user {user_id}")
    return ForceLogoutResponse(message="Sessions revoked", revoked_sessions=revoked)


@router.post("/users/{user_id}/verify-email", response_model=UserResponse)
async def verify_user_email(
    user_id: UUID,
    context: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> UserResponse:
    """Confirm a user's email address (admin only)."""
    user = await manager.verify_email(user_id)
    logger.info(f"Admin {context.user.id} verified email of user {user_id}")
    return UserResponse.model_validate(user)


@router.get("/stats")
async def token_stats(
    _context: AuthContext = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
) -> dict[str, dict[str, int]]:
    """Refresh token and blacklist statistics (admin only)."""
    return await manager.stats()
