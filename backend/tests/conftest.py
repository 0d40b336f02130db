"""Pytest configuration and fixtures for backend tests.

Database-backed tests run against in-memory SQLite through aiosqlite, so
no PostgreSQL server is needed. Time-dependent behaviour is driven by a
FakeClock injected into the signer and the stores.
"""

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from taskauth.core.database import Base, create_session_maker
from taskauth.models import User  # noqa: F401
from taskauth.services.auth import SessionManager
from taskauth.services.credentials import SQLCredentialStore
from taskauth.services.memory import (
    InMemoryCredentialStore,
    InMemoryRefreshTokenLedger,
    InMemoryTokenBlacklist,
)
from taskauth.services.passwords import Argon2PasswordHasher
from taskauth.services.refresh_tokens import SQLRefreshTokenLedger
from taskauth.services.roles import Role
from taskauth.services.token_blacklist import SQLTokenBlacklist
from taskauth.services.tokens import TokenSigner

TEST_SECRET = os.environ["JWT_SECRET_KEY"]
TEST_PASSWORD = "correct-horse-battery"


class FakeClock:
    """Controllable clock; whole seconds so JWT timestamps line up exactly."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(scope="session")
def hasher() -> Argon2PasswordHasher:
    """Argon2 with minimal work factors to keep the suite fast."""
    return Argon2PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def signer(clock: FakeClock) -> TokenSigner:
    return TokenSigner(secret_key=TEST_SECRET, clock=clock)


# --- In-memory stores ---


@pytest.fixture
def credentials(hasher: Argon2PasswordHasher, clock: FakeClock) -> InMemoryCredentialStore:
    return InMemoryCredentialStore(hasher, clock=clock)


@pytest.fixture
def refresh_ledger(clock: FakeClock) -> InMemoryRefreshTokenLedger:
    return InMemoryRefreshTokenLedger(clock=clock)


@pytest.fixture
def blacklist(clock: FakeClock) -> InMemoryTokenBlacklist:
    return InMemoryTokenBlacklist(clock=clock)


@pytest.fixture
def session_manager(
    credentials: InMemoryCredentialStore,
    signer: TokenSigner,
    refresh_ledger: InMemoryRefreshTokenLedger,
    blacklist: InMemoryTokenBlacklist,
) -> SessionManager:
    return SessionManager(credentials, signer, refresh_ledger, blacklist)


UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def user_factory(credentials: InMemoryCredentialStore) -> UserFactory:
    """Create users directly in the in-memory credential store."""
    counter = 0

    async def _create(
        *,
        email: str | None = None,
        username: str | None = None,
        password: str = TEST_PASSWORD,
        role: Role | str = Role.USER,
        is_verified: bool = True,
    ) -> User:
        nonlocal counter
        counter += 1
        return await credentials.create_user(
            email=email or f"user{counter}@example.com",
            username=username or f"user{counter}",
            password=password,
            role=role,
            is_verified=is_verified,
        )

    return _create


# --- Database Fixtures ---


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def db_session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(db_engine)


@pytest.fixture
def sql_credentials(
    db_session_maker: async_sessionmaker[AsyncSession],
    hasher: Argon2PasswordHasher,
    clock: FakeClock,
) -> SQLCredentialStore:
    return SQLCredentialStore(db_session_maker, hasher, clock=clock)


@pytest.fixture
def sql_refresh_ledger(
    db_session_maker: async_sessionmaker[AsyncSession], clock: FakeClock
) -> SQLRefreshTokenLedger:
    return SQLRefreshTokenLedger(db_session_maker, clock=clock)


@pytest.fixture
def sql_blacklist(
    db_session_maker: async_sessionmaker[AsyncSession], clock: FakeClock
) -> SQLTokenBlacklist:
    return SQLTokenBlacklist(db_session_maker, clock=clock)


@pytest.fixture
def sql_session_manager(
    sql_credentials: SQLCredentialStore,
    signer: TokenSigner,
    sql_refresh_ledger: SQLRefreshTokenLedger,
    sql_blacklist: SQLTokenBlacklist,
) -> SessionManager:
    return SessionManager(sql_credentials, signer, sql_refresh_ledger, sql_blacklist)


@pytest_asyncio.fixture
async def sql_user(sql_credentials: SQLCredentialStore) -> User:
    """A verified user persisted in the SQLite database."""
    return await sql_credentials.create_user(
        email="alice@example.com",
        username="alice",
        password=TEST_PASSWORD,
        is_verified=True,
    )


# --- API client ---


@pytest_asyncio.fixture
async def async_client(
    sql_session_manager: SessionManager,
    db_session_maker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for an app wired to the SQLite-backed session manager."""
    from taskauth.main import create_app

    app = create_app(session_manager=sql_session_manager, session_maker=db_session_maker)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


LoginHeaders = Callable[..., Awaitable[dict[str, str]]]


@pytest.fixture
def login_headers(async_client: AsyncClient) -> LoginHeaders:
    """Log in through the API and return an Authorization header."""

    async def _login(email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
        response = await async_client.post(
            "/auth/login", json={"email": email, "password": password}
        )
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
