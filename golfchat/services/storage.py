"""Storage selection: durable SQL when configured, in-memory otherwise."""

from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from golfchat.db import create_engine, create_schema
from golfchat.services.bookings import BookingLedger, InMemoryBookingLedger, SqlBookingLedger
from golfchat.services.conversation_store import ConversationStore, InMemoryConversationStore, SqlConversationStore
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class Storage:
    """The storage collaborators used by the chat service."""

    conversations: ConversationStore
    bookings: BookingLedger
    engine: AsyncEngine | None = None

    @property
    def durable(self) -> bool:
        return self.engine is not None

    async def aclose(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


def in_memory_storage() -> Storage:
    return Storage(conversations=InMemoryConversationStore(), bookings=InMemoryBookingLedger())


async def initialize_storage(database_url: str | None) -> Storage:
    """Select the storage implementation once at startup.

    Args:
        database_url: SQLAlchemy async URL, or None for in-memory storage

    Returns:
        SQL-backed storage, or in-memory storage when no URL is set or the
        database cannot be initialised
    """
    if not database_url:
        logger.info("No DATABASE_URL set, using in-memory storage")
        return in_memory_storage()

    engine = create_engine(database_url)
    try:
        await create_schema(engine)
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database initialisation failed, using in-memory storage: {e}")
        await engine.dispose()
        return in_memory_storage()

    logger.info("Using database storage")
    return Storage(
        conversations=SqlConversationStore(engine),
        bookings=SqlBookingLedger(engine),
        engine=engine,
    )
