"""Tests for conversation storage and storage selection."""

import asyncio

import pytest

from golfchat.db import create_engine, create_schema
from golfchat.models.golf import BookingRecord
from golfchat.services.bookings import InMemoryBookingLedger, SqlBookingLedger
from golfchat.services.conversation_store import (
    ConversationNotFoundError,
    InMemoryConversationStore,
    KeyedLocks,
    SqlConversationStore,
)
from golfchat.services.storage import initialize_storage


@pytest.fixture
async def sql_engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'golfchat.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture(params=["memory", "sql"])
async def conversation_store(request, sql_engine):
    """Every test in this module runs against both store implementations."""
    if request.param == "memory":
        return InMemoryConversationStore()
    return SqlConversationStore(sql_engine)


class TestConversations:
    """Tests for creating, listing and deleting conversations."""

    async def test_create_conversation_defaults(self, conversation_store):
        """Test that a new conversation gets an id, default title and UTC timestamp."""
        conversation = await conversation_store.create_conversation()

        assert conversation.id
        assert conversation.title == "New Chat"
        assert conversation.created_at.tzinfo is not None

    async def test_create_conversation_with_title(self, conversation_store):
        """Test that a given title is kept."""
        conversation = await conversation_store.create_conversation("Trip to Marbella")

        fetched = await conversation_store.get_conversation(conversation.id)
        assert fetched.title == "Trip to Marbella"

    async def test_get_unknown_conversation_returns_none(self, conversation_store):
        """Test that unknown ids are not an error."""
        assert await conversation_store.get_conversation("missing") is None

    async def test_list_newest_first(self, conversation_store):
        """Test that conversations are listed most recent first."""
        first = await conversation_store.create_conversation("first")
        await asyncio.sleep(0.001)
        second = await conversation_store.create_conversation("second")

        listed = await conversation_store.list_conversations()
        assert [c.id for c in listed] == [second.id, first.id]

    async def test_delete_cascades_to_messages(self, conversation_store):
        """Test that deleting a conversation removes its messages."""
        conversation = await conversation_store.create_conversation()
        await conversation_store.append_message(conversation.id, "user", "Hello")

        await conversation_store.delete_conversation(conversation.id)

        assert await conversation_store.get_conversation(conversation.id) is None
        assert await conversation_store.list_messages(conversation.id) == []

    async def test_delete_unknown_is_noop(self, conversation_store):
        """Test that deleting a missing conversation does nothing."""
        await conversation_store.delete_conversation("missing")

    async def test_delete_leaves_other_conversations(self, conversation_store):
        """Test that deletion does not touch other conversations' messages."""
        kept = await conversation_store.create_conversation()
        removed = await conversation_store.create_conversation()
        await conversation_store.append_message(kept.id, "user", "keep me")
        await conversation_store.append_message(removed.id, "user", "drop me")

        await conversation_store.delete_conversation(removed.id)

        assert [m.content for m in await conversation_store.list_messages(kept.id)] == ["keep me"]


class TestMessages:
    """Tests for appending and replaying messages."""

    async def test_append_and_list(self, conversation_store):
        """Test that messages come back oldest first with increasing sequence."""
        conversation = await conversation_store.create_conversation()
        await conversation_store.append_message(conversation.id, "user", "Hi")
        await conversation_store.append_message(conversation.id, "assistant", "Hello! How can I help?")

        messages = await conversation_store.list_messages(conversation.id)

        assert [(m.role, m.content) for m in messages] == [("user", "Hi"), ("assistant", "Hello! How can I help?")]
        assert messages[0].sequence < messages[1].sequence
        assert all(m.conversation_id == conversation.id for m in messages)

    async def test_append_to_unknown_conversation_raises(self, conversation_store):
        """Test that appending to a missing conversation fails."""
        with pytest.raises(ConversationNotFoundError):
            await conversation_store.append_message("missing", "user", "Hello")

    async def test_list_messages_unknown_conversation_is_empty(self, conversation_store):
        """Test that listing messages of a missing conversation returns an empty list."""
        assert await conversation_store.list_messages("missing") == []

    async def test_concurrent_appends_keep_call_order(self, conversation_store):
        """Test that interleaved appends to one conversation are stored in call order."""
        conversation = await conversation_store.create_conversation()
        contents = [f"message {i}" for i in range(20)]

        await asyncio.gather(
            *(
                conversation_store.append_message(conversation.id, "user" if i % 2 == 0 else "assistant", content)
                for i, content in enumerate(contents)
            )
        )

        messages = await conversation_store.list_messages(conversation.id)
        assert [m.content for m in messages] == contents
        assert [m.sequence for m in messages] == sorted(m.sequence for m in messages)

    async def test_concurrent_appends_across_conversations(self, conversation_store):
        """Test that concurrent appends to different conversations do not interfere."""
        first = await conversation_store.create_conversation()
        second = await conversation_store.create_conversation()

        await asyncio.gather(
            *(
                conversation_store.append_message(conversation.id, "user", f"{conversation.title} {i}")
                for i in range(5)
                for conversation in (first, second)
            )
        )

        for conversation in (first, second):
            messages = await conversation_store.list_messages(conversation.id)
            assert [m.content for m in messages] == [f"{conversation.title} {i}" for i in range(5)]

    async def test_appends_to_unknown_ids_leave_no_locks(self, conversation_store):
        """Test that rejected appends do not accumulate per-conversation locks."""
        for i in range(100):
            with pytest.raises(ConversationNotFoundError):
                await conversation_store.append_message(f"missing-{i}", "user", "Hello")

        assert len(conversation_store._locks) == 0

    async def test_locks_released_after_concurrent_appends(self, conversation_store):
        """Test that a conversation's lock is dropped once its appends settle."""
        conversation = await conversation_store.create_conversation()

        await asyncio.gather(*(conversation_store.append_message(conversation.id, "user", str(i)) for i in range(10)))

        assert len(conversation_store._locks) == 0
        assert len(await conversation_store.list_messages(conversation.id)) == 10


class TestKeyedLocks:
    """Tests for the per-key lock map."""

    async def test_same_key_is_exclusive(self):
        """Test that holders of one key run one at a time."""
        locks = KeyedLocks()
        inside = 0
        peak = 0

        async def worker():
            nonlocal inside, peak
            async with locks.hold("c1"):
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert peak == 1
        assert len(locks) == 0

    async def test_lock_kept_while_waiters_remain(self):
        """Test that the lock survives until its last waiter is done."""
        locks = KeyedLocks()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("c1"):
                await release.wait()

        first = asyncio.create_task(holder())
        second = asyncio.create_task(holder())
        await asyncio.sleep(0)

        assert len(locks) == 1
        release.set()
        await asyncio.gather(first, second)
        assert len(locks) == 0

    async def test_cancelled_waiter_releases_its_claim(self):
        """Test that a waiter cancelled before acquiring does not leak the lock."""
        locks = KeyedLocks()
        release = asyncio.Event()

        async def holder():
            async with locks.hold("c1"):
                await release.wait()

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiter = asyncio.create_task(holder())
        await asyncio.sleep(0)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        release.set()
        await first
        assert len(locks) == 0


class TestBookingLedger:
    """Tests for the local booking mirror."""

    def _record(self) -> BookingRecord:
        return BookingRecord(
            course_name="Finca Cortesin",
            play_date="2026-11-20",
            tee_time="09:00",
            player_count=2,
            user_name="Alex Smith",
            user_email="alex@example.com",
            confirmation_number="GN12345678ABCD",
            total_price=600,
            currency="EUR",
            status="confirmed",
        )

    async def test_in_memory_ledger_records(self):
        """Test that the in-memory mirror keeps records."""
        ledger = InMemoryBookingLedger()
        await ledger.record_booking(self._record())
        assert ledger.records[0].confirmation_number == "GN12345678ABCD"

    async def test_sql_ledger_records(self, sql_engine):
        """Test that the SQL mirror writes a bookings row."""
        from sqlalchemy import select

        from golfchat.db import BookingRow

        ledger = SqlBookingLedger(sql_engine)
        await ledger.record_booking(self._record())

        async with ledger.session_factory() as session:
            rows = (await session.scalars(select(BookingRow))).all()
        assert [(r.course_name, r.confirmation_number) for r in rows] == [("Finca Cortesin", "GN12345678ABCD")]


class TestStorageSelection:
    """Tests for choosing the storage implementation at startup."""

    async def test_no_url_uses_memory(self):
        """Test that no database URL selects in-memory storage."""
        storage = await initialize_storage(None)

        assert not storage.durable
        assert isinstance(storage.conversations, InMemoryConversationStore)
        assert isinstance(storage.bookings, InMemoryBookingLedger)

    async def test_sqlite_url_uses_sql(self, tmp_path):
        """Test that a database URL selects SQL storage with the schema created."""
        storage = await initialize_storage(f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}")
        try:
            assert storage.durable
            conversation = await storage.conversations.create_conversation()
            assert await storage.conversations.get_conversation(conversation.id) == conversation
        finally:
            await storage.aclose()

    async def test_unreachable_database_falls_back_to_memory(self, tmp_path):
        """Test that a database that cannot be initialised falls back to memory."""
        missing_dir = tmp_path / "does-not-exist" / "chat.db"

        storage = await initialize_storage(f"sqlite+aiosqlite:///{missing_dir}")

        assert not storage.durable
        assert isinstance(storage.conversations, InMemoryConversationStore)
