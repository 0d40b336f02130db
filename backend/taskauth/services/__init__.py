# Task Management Auth Services
from taskauth.services.auth import (
    AuthContext,
    RefreshResult,
    SessionManager,
    TokenPair,
    extract_bearer_token,
)
from taskauth.services.credentials import CredentialStore, SQLCredentialStore
from taskauth.services.passwords import Argon2PasswordHasher
from taskauth.services.refresh_tokens import RefreshTokenLedger, SQLRefreshTokenLedger
from taskauth.services.roles import Role, authorize, has_permission, normalize_role
from taskauth.services.token_blacklist import SQLTokenBlacklist, TokenBlacklistLedger
from taskauth.services.tokens import TokenSigner

__all__ = [
    "Argon2PasswordHasher",
    "AuthContext",
    "CredentialStore",
    "RefreshResult",
    "RefreshTokenLedger",
    "Role",
    "SQLCredentialStore",
    "SQLRefreshTokenLedger",
    "SQLTokenBlacklist",
    "SessionManager",
    "TokenBlacklistLedger",
    "TokenPair",
    "TokenSigner",
    "authorize",
    "extract_bearer_token",
    "has_permission",
    "normalize_role",
]
