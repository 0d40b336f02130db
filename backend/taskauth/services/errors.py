"""Error taxonomy for the authentication core.

Every error carries a stable machine-readable ``code``, a client-safe
``message`` and the HTTP status it maps to.
"""

from typing import Any


class ServiceError(Exception):
    """Base error with a stable code and a client-safe message."""

    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class StorageError(ServiceError):
    """A ledger or credential store is unavailable or timed out."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    default_message = "Service temporarily unavailable"


class AuthError(ServiceError):
    """Base authentication error."""

    code = "AUTH_ERROR"
    status_code = 401
    default_message = "Authentication failed"


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password. Never says which."""

    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class EmailNotVerifiedError(AuthError):
    """Credentials are valid but the account email is not verified."""

    code = "EMAIL_NOT_VERIFIED"
    status_code = 403
    default_message = "Email verification required before logging in"


class UserExistsError(AuthError):
    code = "USER_EXISTS"
    status_code = 409
    default_message = "User with this email or username already exists"


class UserNotFoundError(AuthError):
    """Token references a user that is no longer active."""

    code = "USER_NOT_FOUND"
    default_message = "User not found"


class TokenError(AuthError):
    """JWT token error."""

    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class TokenMissingError(TokenError):
    code = "TOKEN_MISSING"
    default_message = "Access token required"


class TokenMalformedError(TokenError):
    """Bad signature, issuer, audience, algorithm or structure."""

    code = "TOKEN_INVALID"
    default_message = "Invalid token"


class TokenExpiredError(TokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class InvalidTokenTypeError(TokenError):
    code = "INVALID_TOKEN_TYPE"
    default_message = "Invalid token type"


class TokenBlacklistedError(TokenError):
    code = "TOKEN_BLACKLISTED"
    default_message = "Token has been invalidated"


class RefreshTokenNotFoundOrExpiredError(TokenError):
    """Refresh token never existed, expired, or was revoked."""

    code = "REFRESH_TOKEN_INVALID"
    default_message = "Refresh token not found or expired"


class AuthRequiredError(AuthError):
    code = "AUTH_REQUIRED"
    default_message = "Authentication required"


class InsufficientPermissionsError(AuthError):
    """Caller's role is not among the accepted roles."""

    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403
    default_message = "Insufficient permissions"

    def __init__(self, required: list[str], current: str, message: str | None = None):
        super().__init__(message)
        self.required = required
        self.current = current

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["required"] = self.required
        data["current"] = self.current
        return data
