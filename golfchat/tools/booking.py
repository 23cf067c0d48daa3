"""Tee time booking tool."""

from pydantic import Field, field_validator

from golfchat.clients.golfnow import BookingProvider, BookingProviderError
from golfchat.models.golf import BookingRecord, BookingRequest
from golfchat.services.bookings import BookingLedger
from golfchat.tools.base import ToolDefinition, ToolInput, ToolResult
from golfchat.tools.courses import DATE_PATTERN
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

BOOK_TEE_TIME = "book_tee_time"


class BookTeeTimeInput(ToolInput):
    """Input schema for the booking tool. Every field but the phone number is required."""

    course_id: str = Field(..., min_length=1, description="The course ID to book")
    course_name: str = Field(..., min_length=1, description="Full name of the course")
    play_date: str = Field(..., pattern=DATE_PATTERN, description="Date for tee time in YYYY-MM-DD format")
    tee_time: str = Field(
        ...,
        pattern=r"^\d{2}:\d{2}$",
        description="Tee time in HH:MM format",
        examples=["08:00", "14:30"],
    )
    player_count: int = Field(..., ge=1, le=4, description="Number of players")
    user_name: str = Field(..., min_length=2, max_length=100, description="Full name of the person making the booking")
    user_email: str = Field(
        ...,
        pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$",
        description="Email address of the person making the booking",
    )
    user_phone: str | None = Field(
        default=None,
        max_length=30,
        description="Phone number of the person making the booking, if they gave one",
    )

    @field_validator("user_name")
    @classmethod
    def validate_user_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Name cannot be empty or whitespace only")
        return v.strip()


def create_book_tee_time_tool(provider: BookingProvider, ledger: BookingLedger) -> ToolDefinition:
    async def book_tee_time_handler(params: BookTeeTimeInput) -> ToolResult:
        try:
            confirmation = await provider.book_tee_time(
                BookingRequest(
                    course_id=params.course_id,
                    course_name=params.course_name,
                    play_date=params.play_date,
                    tee_time=params.tee_time,
                    player_count=params.player_count,
                    user_name=params.user_name,
                    user_email=params.user_email,
                    user_phone=params.user_phone,
                )
            )
        except BookingProviderError as e:
            logger.warning(f"Booking failed for course {params.course_id}: {e}")
            return ToolResult.failure(BOOK_TEE_TIME, str(e) or "Booking failed", success=False)

        # The provider booking stands regardless of whether the mirror write succeeds
        try:
            await ledger.record_booking(
                BookingRecord(
                    course_name=params.course_name,
                    play_date=params.play_date,
                    tee_time=params.tee_time,
                    player_count=params.player_count,
                    user_name=params.user_name,
                    user_email=params.user_email,
                    confirmation_number=confirmation.confirmation_number,
                    total_price=confirmation.total_price,
                    currency=confirmation.currency,
                    status=confirmation.status,
                )
            )
        except Exception as e:
            logger.error(f"Failed to record booking {confirmation.confirmation_number} locally: {e}", exc_info=True)

        logger.info(
            f"Booked {params.course_name} on {params.play_date} {params.tee_time}: {confirmation.confirmation_number}"
        )
        return ToolResult.ok(
            BOOK_TEE_TIME,
            {
                "success": True,
                "booking_id": confirmation.booking_id,
                "confirmation_number": confirmation.confirmation_number,
                "course_name": confirmation.course_name,
                "play_date": confirmation.play_date,
                "tee_time": confirmation.tee_time,
                "total_price": confirmation.total_price,
                "currency": confirmation.currency,
                "status": confirmation.status,
            },
            booking=confirmation,
        )

    return ToolDefinition(
        name=BOOK_TEE_TIME,
        description=(
            "Book a tee time for the user. Use this only when the user has confirmed they want to book. "
            "You MUST collect all required information first: course, date, time, number of players, "
            "the user's full name and email. Confirm the details with the user before calling."
        ),
        input_schema_class=BookTeeTimeInput,
        handler=book_tee_time_handler,
        status_message="Booking your tee time...",
        side_effecting=True,
    )
