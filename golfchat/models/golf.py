"""Golf course, tee time and booking data models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass
class CourseSearchParams:
    """Filter for a course search. Every field is optional."""

    location: str | None = None
    course_name: str | None = None
    date: str | None = None
    players: int = 4


@dataclass
class Course:
    """A bookable golf course."""

    id: str
    name: str
    location: str
    region: str
    price: float
    currency: str = "EUR"
    rating: float = 4.5
    description: str | None = None
    image_url: str | None = None
    booking_url: str | None = None

    def summary(self) -> dict[str, Any]:
        """Course summary handed to the model."""
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "region": self.region,
            "price": self.price,
            "currency": self.currency,
            "rating": self.rating,
            "description": self.description,
            "booking_url": self.booking_url or f"https://www.greenfee365.com/en/golf-club/spain/{self.id}",
        }


@dataclass
class TeeTimeSlot:
    """A tee time offered by a course."""

    time: str
    available: bool
    price: float
    players: int
    currency: str = "EUR"
    course_id: str | None = None


@dataclass
class BookingRequest:
    """Everything the provider needs to book a tee time."""

    course_id: str
    course_name: str
    play_date: str
    tee_time: str
    player_count: int
    user_name: str
    user_email: str
    user_phone: str | None = None


@dataclass
class BookingConfirmation:
    """A booking accepted by the provider."""

    booking_id: str
    confirmation_number: str
    course_name: str
    play_date: str
    tee_time: str
    player_count: int
    total_price: float
    currency: str
    status: str  # confirmed, pending
    user_email: str
    affiliate_tracking_id: str | None = None


@dataclass
class BookingRecord:
    """Local mirror of a provider booking, kept for record-keeping."""

    course_name: str
    play_date: str
    tee_time: str
    player_count: int
    user_name: str
    user_email: str
    confirmation_number: str
    total_price: float
    currency: str
    status: str = "confirmed"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
