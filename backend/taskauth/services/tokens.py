"""JWT signing and verification bound to a fixed issuer and audience."""

import hashlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from uuid import uuid4

import jwt
from jwt.exceptions import PyJWTError

from taskauth.core.config import Settings
from taskauth.models.base import utcnow
from taskauth.services.errors import TokenExpiredError, TokenMalformedError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "type"]


class TokenSubject(Protocol):
    """What the signer needs to know about a user."""

    id: Any
    email: str
    role: str


def hash_token(token: str) -> str:
    """One-way SHA-256 hex digest of a raw token, used as the blacklist key."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def peek_expiry(token: str) -> datetime | None:
    """Read the ``exp`` claim without verifying the signature.

    Only used to size blacklist entries; returns None if unparseable.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
        return datetime.fromtimestamp(int(payload["exp"]), tz=UTC)
    except (PyJWTError, KeyError, TypeError, ValueError, OverflowError):
        return None


class TokenSigner:
    """Issues and verifies access and refresh tokens.

    Pure: output depends only on the key, the configured claims and the clock.
    Expiry is checked against the injected clock so that it can be tested at
    its boundary; ``leeway`` is the only clock-skew tolerance.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        issuer: str = "task-management-api",
        audience: str = "task-management-frontend",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        leeway: timedelta = timedelta(0),
        clock: Callable[[], datetime] = utcnow,
    ):
        self._secret_key = secret_key
        self._algorithm = algorithm
        self.issuer = issuer
        self.audience = audience
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.leeway = leeway
        self._clock = clock

    @classmethod
    def from_settings(
        cls, config: Settings, clock: Callable[[], datetime] = utcnow
    ) -> "TokenSigner":
        return cls(
            secret_key=config.jwt_secret_key,
            algorithm=config.jwt_algorithm,
            issuer=config.jwt_issuer,
            audience=config.jwt_audience,
            access_ttl=timedelta(minutes=config.jwt_access_token_expire_minutes),
            refresh_ttl=timedelta(days=config.jwt_refresh_token_expire_days),
            leeway=timedelta(seconds=config.jwt_leeway_seconds),
            clock=clock,
        )

    @property
    def access_ttl_seconds(self) -> int:
        return int(self.access_ttl.total_seconds())

    def _encode(self, claims: dict[str, Any], ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            **claims,
            "iat": now,
            "exp": now + ttl,
            "iss": self.issuer,
            "aud": self.audience,
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token)

    def issue_access(self, user: TokenSubject) -> str:
        """Create a short-lived access token.

        Each token carries its own jti so that two tokens minted for the same
        user within one second never share a blacklist entry.
        """
        return self._encode(
            {
                "jti": str(uuid4()),
                "id": str(user.id),
                "email": user.email,
                "role": str(user.role),
                "type": ACCESS_TOKEN_TYPE,
            },
            self.access_ttl,
        )

    def issue_refresh(self, jti: str, user: TokenSubject) -> str:
        """Create a long-lived refresh token referencing a ledger row."""
        return self._encode(
            {
                "jti": jti,
                "id": str(user.id),
                "email": user.email,
                "type": REFRESH_TOKEN_TYPE,
            },
            self.refresh_ttl,
        )

    def verify(self, token: str) -> dict[str, Any]:
        """Verify signature, algorithm, issuer, audience and expiry.

        Raises:
            TokenExpiredError: The token's ``exp`` has passed.
            TokenMalformedError: Any other verification failure.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                issuer=self.issuer,
                audience=self.audience,
                options={
                    "require": REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except PyJWTError as e:
            logger.debug(f"Token rejected: {type(e).__name__}")
            raise TokenMalformedError() from e

        try:
            expires_at = int(claims["exp"])
        except (TypeError, ValueError) as e:
            raise TokenMalformedError() from e

        now = self._clock().timestamp()
        if expires_at <= now - self.leeway.total_seconds():
            raise TokenExpiredError()
        return claims
