"""User directory: the persistence boundary for accounts."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.models.user import User
from authcore.services.errors import RegistrationError

logger = logging.getLogger(__name__)


class UserDirectory(Protocol):
    """Account lookups and state changes needed by the auth core."""

    async def find_by_username(self, username: str) -> User | None: ...

    async def find_by_email(self, email: str) -> User | None: ...

    async def create_user(self, username: str, email: str, password_hash: str) -> User: ...

    async def mark_verified(self, username: str) -> bool: ...

    async def record_login(self, username: str, password_hash: str | None = None) -> None: ...


class SqlUserDirectory:
    """UserDirectory backed by async SQLAlchemy.

    Each call uses its own short-lived session so the directory can be
    shared across concurrent requests.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] | None = None,
    ):
        self._session_maker = session_maker
        self._clock = clock or (lambda: datetime.now(UTC))

    async def find_by_username(self, username: str) -> User | None:
        async with self._session_maker() as session:
            result = await session.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        async with self._session_maker() as session:
            result = await session.execute(select(User).where(User.email == email.lower()))
            return result.scalar_one_or_none()

    async def create_user(self, username: str, email: str, password_hash: str) -> User:
        """Insert a new, unverified account.

        Raises RegistrationError if the username or email was claimed
        concurrently.
        """
        user = User(
            username=username,
            email=email.lower(),
            password_hash=password_hash,
            is_verified=False,
        )
        async with self._session_maker() as session:
            session.add(user)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise RegistrationError("Username or email already registered") from e
            await session.refresh(user)
        logger.info(f"Created user: {username}")
        return user

    async def mark_verified(self, username: str) -> bool:
        """Flip the account to verified. Returns False if it no longer exists."""
        async with self._session_maker() as session:
            result = await session.execute(
                update(User).where(User.username == username).values(is_verified=True)
            )
            await session.commit()
            return (result.rowcount or 0) > 0

    async def record_login(self, username: str, password_hash: str | None = None) -> None:
        """Stamp the login time, optionally storing an upgraded password hash."""
        values: dict = {"last_login_at": self._clock()}
        if password_hash is not None:
            values["password_hash"] = password_hash
        async with self._session_maker() as session:
            await session.execute(update(User).where(User.username == username).values(**values))
            await session.commit()
