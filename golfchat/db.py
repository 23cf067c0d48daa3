"""SQLAlchemy tables and engine helpers for durable storage."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String, Text, event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class ConversationRow(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class MessageRow(Base):
    __tablename__ = "messages"

    # Autoincrementing sequence defines replay order within a conversation
    sequence: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class BookingRow(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_name: Mapped[str] = mapped_column(Text, nullable=False)
    play_date: Mapped[str] = mapped_column(String(10), nullable=False)
    tee_time: Mapped[str] = mapped_column(String(5), nullable=False)
    player_count: Mapped[int] = mapped_column(Integer, nullable=False)
    user_name: Mapped[str] = mapped_column(Text, nullable=False)
    user_email: Mapped[str] = mapped_column(Text, nullable=False)
    confirmation_number: Mapped[str] = mapped_column(String(64), nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="confirmed")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on round trip; stored values are always UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, e.g. for ``sqlite+aiosqlite:///golfchat.db``."""
    engine = create_async_engine(database_url)

    if engine.dialect.name == "sqlite":
        # SQLite only enforces foreign keys when asked to, per connection
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


async def create_schema(engine: AsyncEngine) -> None:
    """Create missing tables. Migrations are out of scope."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
