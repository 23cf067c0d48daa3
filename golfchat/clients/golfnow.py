"""Booking provider interface and GolfNow affiliate API implementations."""

import random
import string
import time
from typing import Any, Protocol

import httpx

from golfchat.models.golf import BookingConfirmation, BookingRequest, Course, CourseSearchParams, TeeTimeSlot
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


class BookingProviderError(Exception):
    """The booking provider failed to answer a request."""


class CourseNotFoundError(BookingProviderError):
    """The requested course does not exist at the provider."""

    def __init__(self, course_id: str):
        super().__init__(f"Course not found: {course_id}")
        self.course_id = course_id


class BookingProvider(Protocol):
    """Interface for golf course search and booking providers.

    Implementations raise BookingProviderError (or a subclass) on failure.
    An empty result list means "no results", never a failure.
    """

    async def search_courses(self, params: CourseSearchParams) -> list[Course]:
        """Search bookable courses matching the filter."""
        ...

    async def get_course(self, course_id: str) -> Course:
        """Get one course by id.

        Raises:
            CourseNotFoundError: If the course does not exist
        """
        ...

    async def get_available_tee_times(self, course_id: str, date: str, players: int = 4) -> list[TeeTimeSlot]:
        """List tee times for a course on a date."""
        ...

    async def book_tee_time(self, request: BookingRequest) -> BookingConfirmation:
        """Book a tee time and return the provider's confirmation."""
        ...


class MockBookingProvider:
    """In-memory booking provider used when GolfNow credentials are not configured.

    Serves a fixed catalogue of Costa del Sol courses.
    """

    def __init__(self, affiliate_id: str | None = None):
        """Initialize with mock course data."""
        self.affiliate_id = affiliate_id
        self.courses = self._create_mock_courses()

    async def search_courses(self, params: CourseSearchParams) -> list[Course]:
        """Filter the catalogue by location or course name."""
        courses = self.courses
        if params.location:
            location = params.location.lower()
            courses = [
                c
                for c in courses
                if location in c.location.lower() or location in c.region.lower() or location in c.name.lower()
            ]
        if params.course_name:
            name = params.course_name.lower()
            courses = [c for c in courses if name in c.name.lower()]
        return courses

    async def get_course(self, course_id: str) -> Course:
        """Find a course by id."""
        for course in self.courses:
            if course.id == course_id:
                return course
        raise CourseNotFoundError(course_id)

    async def get_available_tee_times(self, course_id: str, date: str, players: int = 4) -> list[TeeTimeSlot]:
        """Generate the standard slot pattern priced from the course's green fee."""
        course = await self.get_course(course_id)
        return self._mock_slots(course, players)

    async def book_tee_time(self, request: BookingRequest) -> BookingConfirmation:
        """Create a confirmed mock booking."""
        course = await self.get_course(request.course_id)
        slot = next((s for s in self._mock_slots(course, request.player_count) if s.time == request.tee_time), None)
        if slot is None:
            raise BookingProviderError(f"Tee time {request.tee_time} is not available at {course.name}")

        return BookingConfirmation(
            booking_id=f"golfnow-{int(time.time() * 1000)}",
            confirmation_number=self._confirmation_number(),
            course_name=request.course_name,
            play_date=request.play_date,
            tee_time=request.tee_time,
            player_count=request.player_count,
            total_price=slot.price * request.player_count,
            currency=slot.currency,
            status="confirmed",
            user_email=request.user_email,
            affiliate_tracking_id=self.affiliate_id,
        )

    def _confirmation_number(self) -> str:
        """GN + last 8 digits of the epoch millis + 4 random alphanumerics."""
        suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
        return f"GN{str(int(time.time() * 1000))[-8:]}{suffix}"

    def _booking_url(self, course_id: str) -> str | None:
        if not self.affiliate_id:
            return None
        return f"https://www.golfnow.com/tee-times/facility/{course_id}?affiliate_id={self.affiliate_id}"

    def _mock_slots(self, course: Course, players: int) -> list[TeeTimeSlot]:
        base_price = course.price
        offsets = [("08:00", 0), ("08:30", 0), ("09:00", 20), ("10:00", 30), ("14:00", -30)]
        return [
            TeeTimeSlot(time=t, available=True, price=base_price + offset, players=players, course_id=course.id)
            for t, offset in offsets
        ]

    def _create_mock_courses(self) -> list[Course]:
        """Create mock course data."""
        return [
            Course(
                id="valderrama",
                name="Real Club Valderrama",
                location="Sotogrande",
                region="Costa del Sol",
                price=350,
                rating=4.9,
                description="One of Europe's most prestigious courses, host to the 1997 Ryder Cup.",
                booking_url=self._booking_url("valderrama"),
            ),
            Course(
                id="sotogrande",
                name="Sotogrande Old Course",
                location="Sotogrande",
                region="Costa del Sol",
                price=180,
                rating=4.7,
                description="A beautiful Robert Trent Jones Sr. design with stunning views.",
                booking_url=self._booking_url("sotogrande"),
            ),
            Course(
                id="finca-cortesin",
                name="Finca Cortesin",
                location="Casares",
                region="Costa del Sol",
                price=280,
                rating=4.8,
                description="Luxury resort course with impeccable conditions.",
                booking_url=self._booking_url("finca-cortesin"),
            ),
        ]


class GolfNowClient:
    """GolfNow Affiliate & Partner API client.

    GolfNow authenticates with UserName/Password headers rather than API keys.
    Requests are scoped to the configured channel.
    """

    def __init__(
        self,
        username: str,
        password: str,
        channel_id: str,
        base_url: str = "https://sandbox.api.gnsvc.com/rest",
        affiliate_id: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the HTTP client.

        Args:
            username: GolfNow API user name
            password: GolfNow API password
            channel_id: Channel the affiliate account belongs to
            base_url: sandbox or production REST root
            affiliate_id: Appended to booking links for commission tracking
            timeout: Per-request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.channel_id = channel_id
        self.affiliate_id = affiliate_id
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={
                "Accept": "application/json",
                "AdvancedErrorCodes": "True",
                "UserName": username,
                "Password": password,
            },
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def search_courses(self, params: CourseSearchParams) -> list[Course]:
        """Search facilities in the channel."""
        query: dict[str, Any] = {"expand": "FacilityDetail.Ratesets", "players": params.players}
        if params.location:
            query["q"] = params.location
        if params.date:
            query["playDate"] = params.date

        data = await self._get(f"/channel/{self.channel_id}/facilities", query)
        facilities = data.get("facilities") or data.get("data") or []
        courses = [self._to_course(facility) for facility in facilities]
        if params.course_name:
            name = params.course_name.lower()
            courses = [c for c in courses if name in c.name.lower()]
        return courses

    async def get_course(self, course_id: str) -> Course:
        """Get facility details."""
        facility = await self._get(f"/facilities/{course_id}", missing_course=course_id)
        return self._to_course(facility)

    async def get_available_tee_times(self, course_id: str, date: str, players: int = 4) -> list[TeeTimeSlot]:
        """List bookable tee times for a facility."""
        data = await self._get("/tee-times", {"facilityId": course_id, "playDate": date, "players": players})
        tee_times = data.get("teeTimes") or data.get("data") or []
        return [
            TeeTimeSlot(
                time=tt.get("time") or tt.get("teeTime") or "",
                available=tt.get("available") is not False,
                price=tt.get("price") or tt.get("rate") or 0,
                players=tt.get("players") or tt.get("maxPlayers") or players,
                currency=tt.get("currency") or "EUR",
                course_id=str(tt.get("facilityId") or course_id),
            )
            for tt in tee_times
            if tt.get("available") is not False
        ]

    async def book_tee_time(self, request: BookingRequest) -> BookingConfirmation:
        """Submit a booking to GolfNow."""
        customer = {"name": request.user_name, "email": request.user_email}
        if request.user_phone:
            customer["phone"] = request.user_phone
        payload = {
            "facilityId": request.course_id,
            "playDate": request.play_date,
            "teeTime": request.tee_time,
            "players": request.player_count,
            "customer": customer,
            "affiliateId": self.affiliate_id,
        }

        try:
            response = await self.client.post("/bookings", json=payload)
        except httpx.HTTPError as e:
            raise BookingProviderError(f"GolfNow booking request failed: {e}") from e

        if response.is_error:
            message = None
            try:
                message = response.json().get("message")
            except ValueError:
                pass
            raise BookingProviderError(message or f"Booking failed: {response.status_code}")

        booking = response.json()
        confirmation_number = booking.get("confirmationNumber") or booking.get("confirmation")
        if not confirmation_number:
            logger.error(f"GolfNow accepted a booking for course {request.course_id} without a confirmation number")
            raise BookingProviderError(
                "GolfNow did not return a confirmation number. The booking may still have been made; "
                "contact the course before booking again."
            )

        logger.info(f"GolfNow booking {confirmation_number} created for course {request.course_id}")
        return BookingConfirmation(
            booking_id=str(booking.get("bookingId") or booking.get("id") or f"golfnow-{int(time.time() * 1000)}"),
            confirmation_number=str(confirmation_number),
            course_name=request.course_name,
            play_date=request.play_date,
            tee_time=request.tee_time,
            player_count=request.player_count,
            total_price=booking.get("totalPrice") or booking.get("amount") or 0,
            currency=booking.get("currency") or "EUR",
            status=booking.get("status") or "confirmed",
            user_email=request.user_email,
            affiliate_tracking_id=booking.get("affiliateTrackingId") or self.affiliate_id,
        )

    async def _get(
        self, path: str, params: dict[str, Any] | None = None, missing_course: str | None = None
    ) -> dict[str, Any]:
        try:
            response = await self.client.get(path, params=params)
        except httpx.HTTPError as e:
            raise BookingProviderError(f"GolfNow request failed: {e}") from e

        if response.status_code == 404 and missing_course:
            raise CourseNotFoundError(missing_course)
        if response.is_error:
            raise BookingProviderError(f"GolfNow API error: {response.status_code}")
        return response.json()

    def _with_affiliate(self, url: str) -> str:
        if not self.affiliate_id:
            return url
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}affiliate_id={self.affiliate_id}"

    def _to_course(self, facility: dict[str, Any]) -> Course:
        booking_url = facility.get("bookingUrl")
        return Course(
            id=str(facility.get("id") or facility.get("facilityId") or ""),
            name=facility.get("name") or facility.get("facilityName") or "Unknown Course",
            location=facility.get("city") or facility.get("location") or "",
            region=facility.get("state") or facility.get("region") or "",
            price=facility.get("minPrice") or facility.get("averagePrice") or 0,
            currency=facility.get("currency") or "EUR",
            rating=facility.get("rating") or 4.5,
            description=facility.get("description"),
            image_url=facility.get("imageUrl"),
            booking_url=self._with_affiliate(booking_url) if booking_url else None,
        )
