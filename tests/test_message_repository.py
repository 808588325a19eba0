"""
Tests for the SQL message store and user repository (SQLite in-memory).
"""

from datetime import datetime, timedelta, timezone

import pytest

from shared.models import Base, User
from chat_gateway.components.data.message_repository import (
    CreationClock,
    MessageStoreError,
    SqlMessageStore,
)
from chat_gateway.components.data.user_repository import UserRepository


class TestSqlMessageStore:

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_timestamp(self, sql_store):
        stored = await sql_store.create("a", "b", "hi", None)

        assert stored.id
        assert stored.created_at is not None
        assert (stored.sender, stored.recipient, stored.text, stored.file) == ("a", "b", "hi", None)

    @pytest.mark.asyncio
    async def test_create_with_attachment_only(self, sql_store):
        stored = await sql_store.create("a", "b", None, "1709129717000.png")
        assert stored.text is None
        assert stored.file == "1709129717000.png"

    @pytest.mark.asyncio
    async def test_conversation_both_directions_oldest_first(self, sql_store):
        first = await sql_store.create("a", "b", "one", None)
        second = await sql_store.create("b", "a", "two", None)
        await sql_store.create("a", "c", "other conversation", None)
        third = await sql_store.create("a", "b", "three", None)

        history = await sql_store.find_conversation("a", "b")

        assert [m.id for m in history] == [first.id, second.id, third.id]
        assert [m.id for m in await sql_store.find_conversation("b", "a")] == [m.id for m in history]

    @pytest.mark.asyncio
    async def test_same_instant_messages_keep_creation_order(self, session_factory):
        instant = datetime(2024, 2, 28, 12, 0, tzinfo=timezone.utc)
        store = SqlMessageStore(session_factory, clock=CreationClock(lambda: instant))

        created = [await store.create("a", "b", str(n), None) for n in range(6)]
        history = await store.find_conversation("a", "b")

        assert [m.text for m in history] == ["0", "1", "2", "3", "4", "5"]
        assert [m.id for m in history] == [m.id for m in created]

    @pytest.mark.asyncio
    async def test_store_failure_raises_store_error(self, sql_store, db_engine):
        Base.metadata.drop_all(bind=db_engine)

        with pytest.raises(MessageStoreError):
            await sql_store.create("a", "b", "hi", None)


class TestUserRepository:

    @pytest.mark.asyncio
    async def test_find_by_username(self, session_factory):
        with session_factory() as db:
            db.add(User(username="alice", password="$2b$12$hash"))
            db.commit()

        user = await UserRepository(session_factory).find_by_username("alice")

        assert user is not None
        assert user.username == "alice"
        assert user.password == "$2b$12$hash"
        assert user.id

    @pytest.mark.asyncio
    async def test_unknown_username(self, session_factory):
        repo = UserRepository(session_factory)
        assert await repo.find_by_username("nobody") is None
        assert await repo.find_by_username("") is None


class TestCreationClock:

    def test_repeated_instant_is_bumped(self):
        instant = datetime(2024, 2, 28, tzinfo=timezone.utc)
        clock = CreationClock(lambda: instant)

        stamps = [clock.next() for _ in range(3)]

        assert stamps == [instant + timedelta(microseconds=n) for n in range(3)]

    def test_clock_stepping_back_stays_increasing(self):
        later = datetime(2024, 2, 28, 0, 0, 1, tzinfo=timezone.utc)
        times = iter([later, later - timedelta(seconds=1)])
        clock = CreationClock(lambda: next(times))

        first, second = clock.next(), clock.next()

        assert second > first
