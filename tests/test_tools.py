"""Tests for the tools registry and the golf tools."""

import asyncio
import json

import pytest
from conftest import CONFIRMATION_NUMBER, FailingBookingLedger, SlowBookingProvider, booking_arguments

from golfchat.tools.registry import ToolArgumentError, ToolsRegistry


class StubSearchClient:
    """Stands in for the Perplexity client's one-shot search."""

    def __init__(self):
        self.queries: list[str] = []

    async def search(self, query: str) -> str:
        self.queries.append(query)
        return "Valderrama green fees are around €350 this season."


class TestToolCatalog:
    """Tests for the tools advertised to the model."""

    def test_default_tools(self, registry):
        """Test that the booking tools are registered in order."""
        assert registry.get_tool_names() == ["search_golf_courses", "get_tee_times", "book_tee_time"]
        assert not registry.has_tool("web_search_golf")

    def test_web_search_registered_with_search_client(self, provider, ledger):
        """Test that web search is only offered when a search client is configured."""
        registry = ToolsRegistry(booking_provider=provider, booking_ledger=ledger, search_client=StubSearchClient())
        assert registry.has_tool("web_search_golf")

    def test_definitions_carry_json_schema(self, registry):
        """Test that each definition exposes the input model's JSON schema."""
        definitions = {d.name: d for d in registry.get_tool_definitions()}

        booking_schema = definitions["book_tee_time"].input_schema
        assert set(booking_schema["required"]) == {
            "courseId",
            "courseName",
            "playDate",
            "teeTime",
            "playerCount",
            "userName",
            "userEmail",
        }
        assert "required" not in definitions["search_golf_courses"].input_schema
        assert set(definitions["get_tee_times"].input_schema["required"]) == {"courseId", "date"}

    def test_status_messages(self, registry):
        """Test that tools report a progress notice."""
        assert registry.status_message("search_golf_courses") == "Searching for golf courses..."
        assert registry.status_message("book_tee_time") == "Booking your tee time..."
        assert registry.status_message("nope") is None


class TestArgumentParsing:
    """Tests for decoding model arguments into typed inputs."""

    def test_parses_json_text(self, registry):
        """Test that camelCase argument JSON becomes the tool's input model."""
        params = registry.parse_arguments("get_tee_times", '{"courseId": "valderrama", "date": "2026-11-20"}')
        assert params.course_id == "valderrama"
        assert params.players == 4

    def test_snake_case_arguments_accepted(self, registry):
        """Test that field names are accepted alongside the camelCase keys."""
        params = registry.parse_arguments("get_tee_times", {"course_id": "valderrama", "date": "2026-11-20"})
        assert params.course_id == "valderrama"

    def test_optional_phone(self, registry):
        """Test that the booking phone number is optional."""
        assert registry.parse_arguments("book_tee_time", booking_arguments()).user_phone is None
        params = registry.parse_arguments("book_tee_time", booking_arguments(user_phone="+34 600 000 000"))
        assert params.user_phone == "+34 600 000 000"

    def test_empty_arguments_are_empty_object(self, registry):
        """Test that an empty argument string is treated as no arguments."""
        params = registry.parse_arguments("search_golf_courses", "")
        assert params.location is None

    def test_invalid_json(self, registry):
        """Test that malformed JSON raises a tool argument error."""
        with pytest.raises(ToolArgumentError, match="not valid JSON"):
            registry.parse_arguments("search_golf_courses", '{"location": ')

    def test_non_object_json(self, registry):
        """Test that JSON other than an object is rejected."""
        with pytest.raises(ToolArgumentError, match="must be a JSON object"):
            registry.parse_arguments("search_golf_courses", '["Costa del Sol"]')

    def test_validation_error_names_field(self, registry):
        """Test that field problems are listed in the error."""
        with pytest.raises(ToolArgumentError, match="playerCount"):
            registry.parse_arguments("book_tee_time", booking_arguments(player_count=9))

    def test_bad_email_rejected(self, registry):
        """Test that the booking email is validated."""
        with pytest.raises(ToolArgumentError, match="userEmail"):
            registry.parse_arguments("book_tee_time", booking_arguments(user_email="not-an-email"))

    def test_bad_date_rejected(self, registry):
        """Test that dates must be YYYY-MM-DD."""
        with pytest.raises(ToolArgumentError, match="date"):
            registry.parse_arguments("get_tee_times", {"courseId": "valderrama", "date": "20/11/2026"})


class TestToolExecution:
    """Tests for dispatching tools through the registry."""

    async def test_search_courses(self, registry):
        """Test that course search returns the mock catalogue with booking links."""
        result = await registry.execute("search_golf_courses", '{"location": "Costa del Sol"}')

        assert not result.is_error
        assert result.payload["count"] == 3
        assert {c["id"] for c in result.payload["courses"]} == {"valderrama", "sotogrande", "finca-cortesin"}
        assert all(c["booking_url"] for c in result.payload["courses"])

    async def test_search_courses_no_match_is_empty(self, registry):
        """Test that an empty search is a result, not an error."""
        result = await registry.execute("search_golf_courses", {"location": "Tenerife"})

        assert not result.is_error
        assert result.payload["count"] == 0

    async def test_get_tee_times(self, registry):
        """Test that tee times are priced from the course's green fee."""
        result = await registry.execute("get_tee_times", {"courseId": "sotogrande", "date": "2026-11-20"})

        assert result.payload["course_name"] == "Sotogrande Old Course"
        prices = {slot["time"]: slot["price"] for slot in result.payload["tee_times"]}
        assert prices == {"08:00": 180, "08:30": 180, "09:00": 200, "10:00": 210, "14:00": 150}

    async def test_unknown_course_is_error_result(self, registry):
        """Test that a missing course becomes an error result."""
        result = await registry.execute("get_tee_times", {"courseId": "nowhere", "date": "2026-11-20"})

        assert result.is_error
        assert result.payload["error"] == "Course not found: nowhere"

    async def test_unknown_tool_is_error_result(self, registry):
        """Test that unknown tools do not raise."""
        result = await registry.execute("launch_rocket", "{}")

        assert result.is_error
        assert "Unknown tool" in result.payload["error"]

    async def test_invalid_arguments_are_error_result(self, registry):
        """Test that argument errors are returned, not raised."""
        result = await registry.execute("book_tee_time", "{not json")

        assert result.is_error
        assert "not valid JSON" in json.loads(result.to_json())["error"]

    async def test_handler_exception_is_error_result(self, registry, provider, monkeypatch):
        """Test that unexpected collaborator failures become error results."""

        async def broken_search(params):
            raise RuntimeError("provider exploded")

        monkeypatch.setattr(provider, "search_courses", broken_search)

        result = await registry.execute("search_golf_courses", {})

        assert result.is_error
        assert result.payload["error"] == "provider exploded"

    async def test_web_search(self, provider, ledger):
        """Test that web search forwards the query to the search client."""
        search_client = StubSearchClient()
        registry = ToolsRegistry(booking_provider=provider, booking_ledger=ledger, search_client=search_client)

        result = await registry.execute("web_search_golf", {"query": "Valderrama green fees"})

        assert search_client.queries == ["Valderrama green fees"]
        assert result.payload["source"] == "perplexity_web_search"
        assert "€350" in result.payload["result"]


class TestBookingTool:
    """Tests for the booking tool's side effects."""

    async def test_successful_booking(self, registry, ledger):
        """Test that a booking returns the confirmation and records it once."""
        result = await registry.execute("book_tee_time", booking_arguments())

        assert not result.is_error
        assert result.payload["success"] is True
        assert result.payload["confirmation_number"] == CONFIRMATION_NUMBER
        assert result.payload["total_price"] == 700
        assert result.booking.confirmation_number == CONFIRMATION_NUMBER
        assert len(ledger.records) == 1
        assert ledger.records[0].user_email == "alex@example.com"

    async def test_unavailable_slot(self, registry, ledger):
        """Test that booking a time that is not offered fails without a mirror write."""
        result = await registry.execute("book_tee_time", booking_arguments(tee_time="06:45"))

        assert result.is_error
        assert result.payload["success"] is False
        assert result.booking is None
        assert ledger.records == []

    async def test_mirror_failure_keeps_booking(self, provider):
        """Test that a failed mirror write is attempted once and does not change the result."""
        failing_ledger = FailingBookingLedger()
        registry = ToolsRegistry(booking_provider=provider, booking_ledger=failing_ledger)

        result = await registry.execute("book_tee_time", booking_arguments())

        assert failing_ledger.attempts == 1
        assert not result.is_error
        assert result.booking.confirmation_number == CONFIRMATION_NUMBER

    async def test_timeout_does_not_cancel_booking(self, ledger):
        """Test that a slow booking is handed back still running and settles to its confirmation."""
        provider = SlowBookingProvider()
        registry = ToolsRegistry(booking_provider=provider, booking_ledger=ledger, tool_timeout_seconds=0.05)

        result = await registry.execute("book_tee_time", booking_arguments())

        assert result.is_error
        assert result.pending is not None
        assert "do not call it again" in result.payload["error"]
        assert ledger.records == []

        settled = await registry.settle(result)

        assert not settled.is_error
        assert settled.booking.confirmation_number == CONFIRMATION_NUMBER
        assert provider.bookings == 1
        assert [r.confirmation_number for r in ledger.records] == [CONFIRMATION_NUMBER]

    async def test_settle_gives_up_without_cancelling(self, ledger):
        """Test that a booking still running after the settle wait is unresolved but not abandoned."""
        provider = SlowBookingProvider(delay=0.3)
        registry = ToolsRegistry(
            booking_provider=provider, booking_ledger=ledger, tool_timeout_seconds=0.05, settle_timeout_seconds=0.05
        )

        settled = await registry.settle(await registry.execute("book_tee_time", booking_arguments()))

        assert settled.unresolved
        assert "Do not call it again" in settled.payload["error"]

        await asyncio.sleep(0.4)
        assert provider.bookings == 1
        assert len(ledger.records) == 1

    async def test_settle_passes_through_finished_results(self, registry):
        """Test that results without a running call are returned unchanged."""
        result = await registry.execute("search_golf_courses", {})
        assert await registry.settle(result) is result

    async def test_timeout_cancels_read_only_tool(self, provider, ledger, monkeypatch):
        """Test that slow lookups are abandoned at the timeout."""
        cancelled = asyncio.Event()

        async def slow_search(params):
            try:
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                cancelled.set()
                raise
            return []

        monkeypatch.setattr(provider, "search_courses", slow_search)
        registry = ToolsRegistry(booking_provider=provider, booking_ledger=ledger, tool_timeout_seconds=0.05)

        result = await registry.execute("search_golf_courses", {})

        assert result.is_error
        assert cancelled.is_set()
