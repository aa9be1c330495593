"""Tests for the SQL-backed user directory and table setup."""

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from authcore.core.database import init_models
from authcore.models.user import User
from authcore.services.errors import RegistrationError

pytestmark = pytest.mark.asyncio


async def test_init_models_creates_users_table():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    try:
        await init_models(engine)
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
    finally:
        await engine.dispose()
    assert User.__tablename__ in tables


class TestSqlUserDirectory:
    async def test_create_and_find(self, directory):
        await directory.create_user("alice", "Alice@Example.com", "hash")

        by_name = await directory.find_by_username("alice")
        by_email = await directory.find_by_email("ALICE@example.com")
        assert by_name is not None
        assert by_email is not None
        assert by_name.id == by_email.id
        assert by_name.email == "alice@example.com"
        assert by_name.is_verified is False

    async def test_missing_user(self, directory):
        assert await directory.find_by_username("nobody") is None
        assert await directory.find_by_email("nobody@example.com") is None

    async def test_duplicate_username_rejected(self, directory):
        await directory.create_user("alice", "a@example.com", "hash")
        with pytest.raises(RegistrationError):
            await directory.create_user("alice", "b@example.com", "hash")

    async def test_duplicate_email_rejected(self, directory):
        await directory.create_user("alice", "a@example.com", "hash")
        with pytest.raises(RegistrationError):
            await directory.create_user("bob", "a@example.com", "hash")

    async def test_mark_verified(self, directory):
        await directory.create_user("alice", "a@example.com", "hash")
        assert await directory.mark_verified("alice") is True
        assert (await directory.find_by_username("alice")).is_verified is True

    async def test_mark_verified_missing_user(self, directory):
        assert await directory.mark_verified("nobody") is False

    async def test_record_login_updates_hash(self, directory):
        await directory.create_user("alice", "a@example.com", "old-hash")
        await directory.record_login("alice", password_hash="new-hash")

        user = await directory.find_by_username("alice")
        assert user.password_hash == "new-hash"
        assert user.last_login_at is not None
