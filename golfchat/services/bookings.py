"""Local booking mirror: a record of every booking confirmed by the provider."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from golfchat.db import BookingRow
from golfchat.models.golf import BookingRecord
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


class BookingLedger(Protocol):
    """Interface for the local booking mirror.

    The provider owns the booking; a failed write here never invalidates it.
    """

    async def record_booking(self, record: BookingRecord) -> None:
        """Store a booking record."""
        ...


class InMemoryBookingLedger:
    """In-memory booking mirror."""

    def __init__(self):
        self.records: list[BookingRecord] = []

    async def record_booking(self, record: BookingRecord) -> None:
        self.records.append(record)


class SqlBookingLedger:
    """Booking mirror persisted in the ``bookings`` table."""

    def __init__(self, engine: AsyncEngine):
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def record_booking(self, record: BookingRecord) -> None:
        async with self.session_factory() as session, session.begin():
            session.add(
                BookingRow(
                    course_name=record.course_name,
                    play_date=record.play_date,
                    tee_time=record.tee_time,
                    player_count=record.player_count,
                    user_name=record.user_name,
                    user_email=record.user_email,
                    confirmation_number=record.confirmation_number,
                    total_price=record.total_price,
                    currency=record.currency,
                    status=record.status,
                    created_at=record.created_at,
                )
            )
        logger.info(f"Recorded booking {record.confirmation_number} for {record.course_name}")
