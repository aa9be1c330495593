"""Pytest configuration and fixtures for authcore tests.

Uses an in-memory SQLite database (aiosqlite) shared through a StaticPool,
so no external database is needed. Time-dependent behavior is driven by a
FakeClock injected into the auth components.
"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-0123456789abcdef"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
# Cheap Argon2 parameters keep the suite fast
os.environ["ARGON2_TIME_COST"] = "1"
os.environ["ARGON2_MEMORY_COST"] = "1024"
os.environ["ARGON2_PARALLELISM"] = "1"

# Test user credentials
TEST_USERNAME = "alice"
TEST_EMAIL = "alice@example.com"
TEST_PASSWORD = "correct-horse-battery"

T0 = datetime(2026, 1, 1, tzinfo=UTC)


class FakeClock:
    """Controllable replacement for datetime.now(UTC)."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingEmailSender:
    """EmailSender that remembers what it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    async def send_verification_email(self, address: str, token: str) -> None:
        self.sent.append((address, token))

    def last_token_for(self, address: str) -> str:
        return [token for to, token in self.sent if to == address][-1]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create an in-memory database engine with all tables."""
    from authcore.models import BaseModel

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def directory(session_maker, clock):
    from authcore.services.directory import SqlUserDirectory

    return SqlUserDirectory(session_maker, clock=clock)


@pytest.fixture
def auth_service(session_maker, email_sender, clock):
    from authcore.core import settings
    from authcore.services.auth import build_auth_service

    return build_auth_service(settings, session_maker, email_sender=email_sender, clock=clock)


# --- Test Factories ---


@pytest.fixture
def user_factory(directory):
    """Factory for creating accounts directly in the directory."""
    from authcore.models.user import User
    from authcore.services.credentials import hash_password

    async def _create_user(
        username: str = TEST_USERNAME,
        email: str = TEST_EMAIL,
        password: str = TEST_PASSWORD,
        verified: bool = True,
    ) -> User:
        user = await directory.create_user(username, email, hash_password(password))
        if verified:
            await directory.mark_verified(username)
            user.is_verified = True
        return user

    return _create_user


@pytest_asyncio.fixture
async def verified_user(user_factory):
    return await user_factory()


@pytest_asyncio.fixture(scope="function")
async def async_client(auth_service) -> AsyncGenerator[AsyncClient, None]:
    """Async test client for an app wired to the test auth service."""
    from authcore.main import create_app

    app = create_app(auth_service)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def session_token(auth_service, verified_user) -> str:
    token = await auth_service.login(TEST_USERNAME, TEST_PASSWORD)
    return token.value


@pytest.fixture
def auth_headers(session_token) -> dict[str, str]:
    return {"Authorization": f"Bearer {session_token}"}
