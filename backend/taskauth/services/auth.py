"""Session manager - login, authentication, refresh and logout flows.

A login establishes two independent credentials: a stateless access token
and a refresh token backed by a ledger row. Session state is derived from
those two stores, never stored on its own:

- active: access token valid and not blacklisted
- access-expired-refresh-valid: ``refresh`` mints a new access token
- refresh-expired-or-revoked: the user must log in again
- explicitly-revoked: access token blacklisted and/or refresh rows revoked
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskauth.core.config import Settings
from taskauth.models.refresh_token import RefreshToken
from taskauth.models.token_blacklist import BlacklistReason
from taskauth.models.user import User
from taskauth.services.credentials import CredentialStore, SQLCredentialStore, coerce_uuid
from taskauth.services.errors import (
    AuthError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenTypeError,
    RefreshTokenNotFoundOrExpiredError,
    StorageError,
    TokenBlacklistedError,
    TokenMalformedError,
    TokenMissingError,
    UserNotFoundError,
)
from taskauth.services.passwords import Argon2PasswordHasher
from taskauth.services.refresh_tokens import RefreshTokenLedger, SQLRefreshTokenLedger
from taskauth.services.roles import Role
from taskauth.services.token_blacklist import SQLTokenBlacklist, TokenBlacklistLedger
from taskauth.services.tokens import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, TokenSigner

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an Authorization header.

    Accepts both "Bearer <token>" and a bare token.
    """
    if not authorization:
        return None
    value = authorization.strip()
    if value[:7].lower() == "bearer ":
        value = value[7:].strip()
    return value or None


@dataclass
class AuthContext:
    """Authenticated caller: fresh user snapshot plus the raw access token."""

    user: User
    token: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User
    token_type: str = "bearer"


@dataclass
class RefreshResult:
    access_token: str
    expires_in: int
    # Only set when refresh token rotation is enabled
    refresh_token: str | None = None
    token_type: str = "bearer"


class SessionManager:
    """Orchestrates the credential store, token signer and both ledgers."""

    def __init__(
        self,
        credentials: CredentialStore,
        signer: TokenSigner,
        refresh_tokens: RefreshTokenLedger,
        blacklist: TokenBlacklistLedger,
        *,
        rotate_refresh_tokens: bool = False,
    ):
        self.credentials = credentials
        self.signer = signer
        self.refresh_tokens = refresh_tokens
        self.blacklist = blacklist
        self.rotate_refresh_tokens = rotate_refresh_tokens

    @classmethod
    def from_settings(
        cls,
        config: Settings,
        session_maker: async_sessionmaker[AsyncSession],
    ) -> "SessionManager":
        """Build a manager backed by the SQL stores."""
        hasher = Argon2PasswordHasher.from_settings(config)
        return cls(
            credentials=SQLCredentialStore(
                session_maker, hasher, timeout=config.db_operation_timeout
            ),
            signer=TokenSigner.from_settings(config),
            refresh_tokens=SQLRefreshTokenLedger.from_settings(session_maker, config),
            blacklist=SQLTokenBlacklist.from_settings(session_maker, config),
            rotate_refresh_tokens=config.refresh_token_rotation,
        )

    async def register(
        self,
        *,
        email: str,
        username: str,
        password: str,
        role: Role | str | int = Role.USER,
    ) -> User:
        """Create an unverified account. Verification happens out of band."""
        return await self.credentials.create_user(
            email=email,
            username=username,
            password=password,
            role=role,
            is_verified=False,
        )

    async def verify_email(self, user_id: Any) -> User:
        """Mark an account's email as verified so that it can log in.

        Delivery of the verification link is handled elsewhere; this is the
        step that runs once ownership of the address is confirmed.
        """
        user = await self.credentials.mark_verified(user_id)
        if user is None:
            raise UserNotFoundError()
        logger.info(f"Email verified for user {user.id}", extra={"user_id": str(user.id)})
        return user

    async def login(
        self,
        email: str,
        password: str,
        device_info: dict[str, Any] | None = None,
    ) -> TokenPair:
        """Authenticate credentials and open a session.

        Raises InvalidCredentialsError for both "user not found" and
        "wrong password" to prevent user enumeration. The ledger row is
        written before any token is minted, so a ledger failure issues
        nothing.
        """
        user = await self.credentials.find_by_email(email)
        password_ok = await self.credentials.verify_password(user, password)
        if user is None or not password_ok:
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentialsError()

        if not user.is_verified:
            logger.info(f"Login refused for unverified user {user.id}")
            raise EmailNotVerifiedError()

        jti, _record = await self.refresh_tokens.create(user.id, device_info)
        access_token = self.signer.issue_access(user)
        refresh_token = self.signer.issue_refresh(jti, user)

        logger.info(f"User logged in: {user.id}", extra={"user_id": str(user.id)})
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=self.signer.access_ttl_seconds,
            user=user,
        )

    async def authenticate(self, token: str | None) -> AuthContext:
        """Verify a bearer access token and load the current user.

        The blacklist is consulted before the signature: a blacklisted
        token is rejected however valid it otherwise is.
        """
        if not token:
            raise TokenMissingError()

        if await self.blacklist.is_blacklisted(token):
            logger.warning("Blacklisted access token presented")
            raise TokenBlacklistedError()

        claims = self.signer.verify(token)
        if claims.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenTypeError()

        user = await self.credentials.find_by_id(claims.get("id"))
        if user is None:
            raise UserNotFoundError()

        return AuthContext(user=user, token=token, claims=claims)

    async def optional_authenticate(self, token: str | None) -> AuthContext | None:
        """Like authenticate(), but any failure yields an anonymous caller."""
        if not token:
            return None
        try:
            return await self.authenticate(token)
        except (AuthError, StorageError) as e:
            logger.debug(f"Optional authentication fell back to anonymous: {e.code}")
            return None

    async def _verify_refresh_token(self, refresh_token: str) -> tuple[dict[str, Any], RefreshToken]:
        claims = self.signer.verify(refresh_token)
        if claims.get("type") != REFRESH_TOKEN_TYPE:
            raise InvalidTokenTypeError()

        jti = claims.get("jti")
        if not isinstance(jti, str) or not jti:
            raise TokenMalformedError()

        record = await self.refresh_tokens.find_valid(jti)
        if record is None:
            raise RefreshTokenNotFoundOrExpiredError()
        return claims, record

    async def refresh(self, refresh_token: str) -> RefreshResult:
        """Mint a new access token from a refresh token.

        The ledger row is authoritative: a correctly signed token whose row
        is revoked or expired is rejected. Without rotation the refresh
        token stays usable, and concurrent refreshes with it all succeed.
        """
        claims, record = await self._verify_refresh_token(refresh_token)
        await self.refresh_tokens.touch_last_used(record.id)

        user = await self.credentials.find_by_id(claims.get("id"))
        if user is None or coerce_uuid(record.user_id) != user.id:
            raise UserNotFoundError()

        new_refresh_token = None
        if self.rotate_refresh_tokens:
            # Losing a concurrent rotation race means the token was already spent
            if not await self.refresh_tokens.revoke(record.jti):
                raise RefreshTokenNotFoundOrExpiredError()
            jti, _new_record = await self.refresh_tokens.create(user.id, record.device_info)
            new_refresh_token = self.signer.issue_refresh(jti, user)

        return RefreshResult(
            access_token=self.signer.issue_access(user),
            expires_in=self.signer.access_ttl_seconds,
            refresh_token=new_refresh_token,
        )

    async def logout(self, context: AuthContext, refresh_token: str | None = None) -> None:
        """Blacklist the caller's access token.

        The paired refresh token is left alone unless it is passed here and
        belongs to the same user. Full termination of every session is
        force_logout().
        """
        await self.blacklist.add(context.token, context.user.id, BlacklistReason.LOGOUT)

        if refresh_token:
            try:
                claims = self.signer.verify(refresh_token)
            except AuthError as e:
                logger.debug(f"Ignoring unusable refresh token on logout: {e.code}")
                claims = {}
            if (
                claims.get("type") == REFRESH_TOKEN_TYPE
                and claims.get("id") == str(context.user.id)
                and claims.get("jti")
            ):
                await self.refresh_tokens.revoke(claims["jti"])

        logger.info(
            f"User logged out: {context.user.id}", extra={"user_id": str(context.user.id)}
        )

    async def force_logout(
        self,
        user_id: Any,
        reason: BlacklistReason = BlacklistReason.FORCED_LOGOUT,
    ) -> int:
        """Revoke every refresh token of a user.

        Access tokens already issued cannot be enumerated; they remain
        valid until their own (short) expiry. A per-user marker is still
        recorded in the blacklist for auditing.
        """
        uid = coerce_uuid(user_id)
        if uid is None:
            raise UserNotFoundError()
        revoked = await self.refresh_tokens.revoke_all_for_user(uid)
        await self.blacklist.revoke_all_for_user(uid, reason)
        logger.warning(
            f"Forced logout for user {uid}: {revoked} sessions revoked ({reason})",
            extra={"user_id": str(uid), "reason": str(reason), "sessions_revoked": revoked},
        )
        return revoked

    async def list_sessions(self, user_id: Any) -> list[RefreshToken]:
        uid = coerce_uuid(user_id)
        if uid is None:
            return []
        return await self.refresh_tokens.list_active_for_user(uid)

    async def cleanup_expired(self) -> tuple[int, int]:
        """Reclaim storage in both ledgers. Not needed for correctness."""
        refresh_removed = await self.refresh_tokens.cleanup_expired()
        blacklist_removed = await self.blacklist.cleanup_expired()
        return refresh_removed, blacklist_removed

    async def stats(self) -> dict[str, dict[str, int]]:
        return {
            "refresh_tokens": await self.refresh_tokens.stats(),
            "blacklist": await self.blacklist.stats(),
        }
