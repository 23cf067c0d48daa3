"""Course search and tee time lookup tools."""

from pydantic import Field

from golfchat.clients.golfnow import BookingProvider
from golfchat.models.golf import CourseSearchParams
from golfchat.tools.base import ToolDefinition, ToolInput, ToolResult

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class SearchCoursesInput(ToolInput):
    """Input schema for the course search tool. Every field is optional."""

    location: str | None = Field(
        default=None,
        description="Location or region to search",
        examples=["Costa del Sol", "Sotogrande", "Barcelona"],
    )
    course_name: str | None = Field(default=None, description="Specific course name if mentioned")
    date: str | None = Field(default=None, pattern=DATE_PATTERN, description="Date for tee time in YYYY-MM-DD format")
    players: int = Field(default=4, ge=1, le=4, description="Number of players (default 4)")


class GetTeeTimesInput(ToolInput):
    """Input schema for the tee time lookup tool."""

    course_id: str = Field(..., min_length=1, description="The course ID (from search results)")
    date: str = Field(..., pattern=DATE_PATTERN, description="Date for tee time in YYYY-MM-DD format")
    players: int = Field(default=4, ge=1, le=4, description="Number of players")


def create_search_courses_tool(provider: BookingProvider) -> ToolDefinition:
    async def search_courses_handler(params: SearchCoursesInput) -> ToolResult:
        courses = await provider.search_courses(
            CourseSearchParams(
                location=params.location,
                course_name=params.course_name,
                date=params.date,
                players=params.players,
            )
        )
        return ToolResult.ok(
            "search_golf_courses",
            {
                "source": "golfnow",
                "courses": [course.summary() for course in courses],
                "count": len(courses),
                "note": "Always include the booking_url as a clickable link for each course in your response.",
            },
        )

    return ToolDefinition(
        name="search_golf_courses",
        description=(
            "Search our booking partner for golf courses in Spain. Use this when the user asks about courses, "
            "wants to find courses in a location, or needs to see options available for booking. "
            "Returns course ids needed by get_tee_times and book_tee_time."
        ),
        input_schema_class=SearchCoursesInput,
        handler=search_courses_handler,
        status_message="Searching for golf courses...",
    )


def create_get_tee_times_tool(provider: BookingProvider) -> ToolDefinition:
    async def get_tee_times_handler(params: GetTeeTimesInput) -> ToolResult:
        course = await provider.get_course(params.course_id)
        slots = await provider.get_available_tee_times(params.course_id, params.date, params.players)
        return ToolResult.ok(
            "get_tee_times",
            {
                "course_name": course.name,
                "date": params.date,
                "tee_times": [
                    {
                        "time": slot.time,
                        "price": slot.price,
                        "currency": slot.currency or course.currency,
                        "available": slot.available,
                    }
                    for slot in slots
                ],
            },
        )

    return ToolDefinition(
        name="get_tee_times",
        description=(
            "Get available tee times for a specific course and date. "
            "Use this after finding a course the user likes; courseId comes from search_golf_courses."
        ),
        input_schema_class=GetTeeTimesInput,
        handler=get_tee_times_handler,
        status_message="Checking tee time availability...",
    )
