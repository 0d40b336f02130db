"""Role hierarchy and authorization checks.

Roles form a closed, totally ordered set: ``user < manager < admin``.
Anything outside that set ranks below every defined role, so it never
satisfies a permission check.
"""

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from taskauth.services.errors import AuthRequiredError, InsufficientPermissionsError

if TYPE_CHECKING:
    from taskauth.services.auth import AuthContext


class Role(StrEnum):
    """User roles, lowest privilege first."""

    USER = "user"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return ROLE_HIERARCHY[self]


ROLE_HIERARCHY: dict[Role, int] = {
    Role.USER: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}

# Numeric identifiers from the roles table
ROLE_ID_MAP: dict[int, Role] = {
    1: Role.ADMIN,
    2: Role.USER,
    3: Role.MANAGER,
}

ROLE_NAME_TO_ID: dict[Role, int] = {role: role_id for role_id, role in ROLE_ID_MAP.items()}


def _parse_role(value: Any) -> Role | None:
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            return None
    return None


def normalize_role(value: Role | str | int | None) -> Role:
    """Resolve a role id or role name to a Role.

    Unknown identifiers resolve to the least privileged role.
    """
    if isinstance(value, bool):
        return Role.USER
    if isinstance(value, int):
        return ROLE_ID_MAP.get(value, Role.USER)
    return _parse_role(value) or Role.USER


def get_role_id(value: Role | str | None) -> int:
    """Return the roles-table id for a role name (defaults to the user role).

    Exposed to clients that still key permissions on the numeric role id.
    """
    return ROLE_NAME_TO_ID[normalize_role(value)]


def role_rank(value: Any) -> int:
    """Rank of a role; 0 for anything that is not a defined role."""
    role = _parse_role(value)
    return ROLE_HIERARCHY[role] if role is not None else 0


def has_permission(user_role: Any, required_role: Any) -> bool:
    """True if ``user_role`` is at least as privileged as ``required_role``.

    Comparisons involving an unknown role are always False.
    """
    user_level = role_rank(user_role)
    required_level = role_rank(required_role)
    if user_level == 0 or required_level == 0:
        return False
    return user_level >= required_level


def authorize(context: "AuthContext | None", *allowed_roles: Role | str) -> "AuthContext":
    """Gate an action on the caller's role.

    Raises:
        AuthRequiredError: No authenticated context.
        InsufficientPermissionsError: The caller's role is not in ``allowed_roles``.
    """
    if context is None:
        raise AuthRequiredError()

    current = str(context.user.role or "")
    allowed = {str(role).lower() for role in allowed_roles}
    if current.lower() not in allowed:
        raise InsufficientPermissionsError(
            required=[str(role) for role in allowed_roles],
            current=current,
        )
    return context
