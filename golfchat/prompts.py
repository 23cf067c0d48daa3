"""System instructions and fixed assistant text."""

from datetime import date

from golfchat.models.golf import BookingConfirmation

_WEB_SEARCH_CAPABILITY = (
    "- **Web Search**: Use web_search_golf for real-time info like current prices, reviews, weather, "
    "course conditions, or any up-to-date information.\n"
)

BOOKING_SYSTEM_PROMPT = """You are a helpful golf booking assistant for PlayGolfSpainNow.
You help users find and book golf courses in Spain.

Today's date is {today}.

KEY CAPABILITIES:
{web_search}- **Course Search**: Use search_golf_courses to find courses available for booking.
- **Tee Times**: Use get_tee_times to check availability for a specific course.
- **Booking**: Use book_tee_time to complete a booking (requires all user details).

BOOKING FLOW:
1. Search courses or get the info the user needs
2. Show available tee times for their date
3. Collect: name, email, date, time, number of players
4. Confirm the details before booking
5. Complete the booking with book_tee_time

IMPORTANT - ALWAYS INCLUDE BOOKING LINKS:
When mentioning any golf course, include a clickable booking link in this format:
- [Course Name - Book Now](booking_url)

Use the booking_url from the course data when present.

Be friendly, helpful, and proactive. Never invent confirmation numbers, prices or availability."""

SEARCH_ONLY_SYSTEM_PROMPT = (
    "You are a helpful golf assistant for PlayGolfSpainNow. Help users find information about golf courses "
    "in Spain. You have access to real-time web search, so provide current and accurate information about "
    "courses, prices, reviews, and availability. You cannot make bookings in this mode; point users to the "
    "course booking links instead. Be friendly and helpful."
)


def booking_system_prompt(web_search: bool = False, today: date | None = None) -> str:
    """System instruction for the tool-capable backend.

    Args:
        web_search: Whether the web search tool is in the catalog
        today: Date to state as the current date; defaults to today

    Returns:
        The rendered instruction
    """
    return BOOKING_SYSTEM_PROMPT.format(
        today=(today or date.today()).isoformat(),
        web_search=_WEB_SEARCH_CAPABILITY if web_search else "",
    )


def format_booking_confirmation(confirmation: BookingConfirmation) -> str:
    """Deterministic confirmation text streamed after a successful booking."""
    return (
        "\n\n✅ **Booking Confirmed!**\n\n"
        f"**Confirmation Number:** {confirmation.confirmation_number}\n"
        f"**Course:** {confirmation.course_name}\n"
        f"**Date:** {confirmation.play_date}\n"
        f"**Time:** {confirmation.tee_time}\n"
        f"**Players:** {confirmation.player_count}\n"
        f"**Total:** {confirmation.total_price:.2f} {confirmation.currency}\n\n"
        "Please keep your confirmation number for check-in. Enjoy your round!"
    )


BOOKING_PENDING_STATUS = "Still confirming your booking..."

BOOKING_UNRESOLVED_MESSAGE = (
    "\n\n⚠️ **Booking not yet confirmed**\n\n"
    "Your booking request was sent to the course, but we did not receive a confirmation in time. "
    "Please do not book again: check your email for a confirmation, or contact the course before retrying."
)
