"""Request-scoped authentication and authorization dependencies."""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, Request

from taskauth.models.user import User
from taskauth.services.auth import AuthContext, SessionManager, extract_bearer_token
from taskauth.services.roles import Role, authorize


def get_session_manager(request: Request) -> SessionManager:
    """Dependency to get the session manager configured on the app."""
    return request.app.state.session_manager


def get_device_info(request: Request) -> dict[str, Any]:
    """User agent and source IP recorded with a refresh token."""
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip": request.client.host if request.client else None,
    }


async def get_auth_context(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> AuthContext:
    """Authenticate the bearer token; the context is also kept on request.state."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    context = await manager.authenticate(token)
    request.state.user = context.user
    request.state.token = context.token
    return context


async def get_optional_auth_context(
    request: Request,
    manager: SessionManager = Depends(get_session_manager),
) -> AuthContext | None:
    """Authenticated context, or None for anonymous callers."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    context = await manager.optional_authenticate(token)
    request.state.user = context.user if context else None
    request.state.token = context.token if context else None
    return context


async def get_current_user(context: AuthContext = Depends(get_auth_context)) -> User:
    """Dependency to get the current authenticated user."""
    return context.user


async def get_optional_user(
    context: AuthContext | None = Depends(get_optional_auth_context),
) -> User | None:
    return context.user if context else None


def require_roles(*allowed_roles: Role | str) -> Callable[..., Awaitable[AuthContext]]:
    """Dependency factory gating a route on the caller's role."""

    async def _require(context: AuthContext = Depends(get_auth_context)) -> AuthContext:
        return authorize(context, *allowed_roles)

    return _require


require_admin = require_roles(Role.ADMIN)
require_manager_or_admin = require_roles(Role.MANAGER, Role.ADMIN)
