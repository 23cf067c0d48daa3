"""Conversation store interface and implementations."""

import asyncio
import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Protocol

from cuid2 import cuid_wrapper
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from golfchat.db import ConversationRow, MessageRow, as_utc
from golfchat.models.conversation import DEFAULT_CONVERSATION_TITLE, Conversation, Message, MessageRole
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class ConversationNotFoundError(LookupError):
    """Raised when appending to a conversation that does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class KeyedLocks:
    """Per-key asyncio locks, dropped once no caller holds or waits on them."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


class ConversationStore(Protocol):
    """Durable, append-only log of messages per conversation.

    Lookups of unknown ids return None or an empty list, never raise.
    Appends to one conversation are serialised, so the replay order of its
    messages is the order in which appends committed.
    """

    async def create_conversation(self, title: str | None = None) -> Conversation: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def list_conversations(self) -> list[Conversation]:
        """All conversations, most recent first."""
        ...

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all its messages. Unknown ids are a no-op."""
        ...

    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        """Append a message at the tail of the conversation.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        ...

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation, oldest first."""
        ...


class InMemoryConversationStore:
    """In-memory conversation store for development and tests."""

    def __init__(self):
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, list[Message]] = {}
        self._sequence = itertools.count(1)
        self._locks = KeyedLocks()

    async def create_conversation(self, title: str | None = None) -> Conversation:
        conversation = Conversation(
            id=cuid(),
            title=title or DEFAULT_CONVERSATION_TITLE,
            created_at=datetime.now(UTC),
        )
        self.conversations[conversation.id] = conversation
        self.messages[conversation.id] = []
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self.conversations.get(conversation_id)

    async def list_conversations(self) -> list[Conversation]:
        # Stable sort on insertion order breaks created_at ties newest first
        newest_first = list(reversed(self.conversations.values()))
        return sorted(newest_first, key=lambda c: c.created_at, reverse=True)

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._locks.hold(conversation_id):
            self.conversations.pop(conversation_id, None)
            self.messages.pop(conversation_id, None)

    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        async with self._locks.hold(conversation_id):
            if conversation_id not in self.conversations:
                raise ConversationNotFoundError(conversation_id)

            message = Message(
                id=cuid(),
                conversation_id=conversation_id,
                role=role,
                content=content,
                created_at=datetime.now(UTC),
                sequence=next(self._sequence),
            )
            self.messages[conversation_id].append(message)
            return message

    async def list_messages(self, conversation_id: str) -> list[Message]:
        return list(self.messages.get(conversation_id, []))


class SqlConversationStore:
    """Conversation store backed by SQLAlchemy's asyncio engine.

    Message order comes from the autoincrementing ``sequence`` column; the
    per-conversation lock keeps concurrent appends from the same process in
    call order.
    """

    def __init__(self, engine: AsyncEngine):
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self._locks = KeyedLocks()

    async def create_conversation(self, title: str | None = None) -> Conversation:
        row = ConversationRow(id=cuid(), title=title or DEFAULT_CONVERSATION_TITLE, created_at=datetime.now(UTC))
        async with self.session_factory() as session, session.begin():
            session.add(row)
        return self._to_conversation(row)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        async with self.session_factory() as session:
            row = await session.get(ConversationRow, conversation_id)
            return self._to_conversation(row) if row else None

    async def list_conversations(self) -> list[Conversation]:
        async with self.session_factory() as session:
            result = await session.scalars(select(ConversationRow).order_by(ConversationRow.created_at.desc()))
            return [self._to_conversation(row) for row in result]

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._locks.hold(conversation_id):
            async with self.session_factory() as session, session.begin():
                await session.execute(delete(MessageRow).where(MessageRow.conversation_id == conversation_id))
                await session.execute(delete(ConversationRow).where(ConversationRow.id == conversation_id))
        logger.info(f"Deleted conversation {conversation_id}")

    async def append_message(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        row = MessageRow(
            id=cuid(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            created_at=datetime.now(UTC),
        )
        async with self._locks.hold(conversation_id):
            # Insert-only transaction; the foreign key rejects unknown conversations
            try:
                async with self.session_factory() as session, session.begin():
                    session.add(row)
            except IntegrityError as e:
                raise ConversationNotFoundError(conversation_id) from e
        return self._to_message(row)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        async with self.session_factory() as session:
            result = await session.scalars(
                select(MessageRow).where(MessageRow.conversation_id == conversation_id).order_by(MessageRow.sequence)
            )
            return [self._to_message(row) for row in result]

    def _to_conversation(self, row: ConversationRow) -> Conversation:
        return Conversation(id=row.id, title=row.title, created_at=as_utc(row.created_at))

    def _to_message(self, row: MessageRow) -> Message:
        return Message(
            id=row.id,
            conversation_id=row.conversation_id,
            role=row.role,
            content=row.content,
            created_at=as_utc(row.created_at),
            sequence=row.sequence,
        )
