"""Shared fixtures and fakes for the test suite."""

import asyncio
import json
from typing import Any

import pytest
from pydantic.alias_generators import to_camel

from golfchat.clients.golfnow import MockBookingProvider
from golfchat.models.golf import BookingRecord
from golfchat.models.llm import LLMMessage, LLMToolDefinition, StreamChunk, StreamEnd, TextDelta, ToolCallDelta
from golfchat.services.bookings import InMemoryBookingLedger
from golfchat.services.chat import ChatOrchestrator
from golfchat.services.conversation_store import InMemoryConversationStore
from golfchat.services.providers import ANTHROPIC, PERPLEXITY, Backend
from golfchat.tools.registry import ToolsRegistry

CONFIRMATION_NUMBER = "GN12345678ABCD"


def text_response(*fragments: str) -> list[StreamChunk]:
    """A model response made only of text fragments."""
    return [TextDelta(text=fragment) for fragment in fragments] + [StreamEnd(stop_reason="end_turn")]


def tool_call_response(
    name: str,
    arguments: dict[str, Any] | str,
    call_id: str = "toolu_1",
    text: str | None = None,
    index: int = 0,
) -> list[StreamChunk]:
    """A model response requesting one tool call, arguments streamed in two fragments."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    half = len(raw) // 2
    chunks: list[StreamChunk] = [TextDelta(text=text)] if text else []
    chunks += [
        ToolCallDelta(index=index, id=call_id, name=name),
        ToolCallDelta(index=index, arguments=raw[:half]),
        ToolCallDelta(index=index, arguments=raw[half:]),
        StreamEnd(stop_reason="tool_use"),
    ]
    return chunks


class ScriptedModelClient:
    """Model client replaying scripted responses, one per invocation.

    The last script repeats once the list is exhausted. A script entry that
    is an exception is raised at that point of the stream.
    """

    def __init__(self, scripts: list[list[Any]], delay: float = 0):
        self.scripts = scripts
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.closed_streams = 0

    @property
    def invocations(self) -> int:
        return len(self.calls)

    async def stream_chat(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ):
        self.calls.append({"messages": list(messages), "system_prompt": system_prompt, "tools": tools})
        script = self.scripts[min(len(self.calls), len(self.scripts)) - 1]
        try:
            for chunk in script:
                await asyncio.sleep(self.delay)
                if isinstance(chunk, BaseException):
                    raise chunk
                yield chunk
        finally:
            self.closed_streams += 1


class FixedConfirmationProvider(MockBookingProvider):
    """Mock provider issuing a known confirmation number."""

    def _confirmation_number(self) -> str:
        return CONFIRMATION_NUMBER


class SlowBookingProvider(FixedConfirmationProvider):
    """Provider whose bookings take a while, counting the bookings it accepts."""

    def __init__(self, delay: float = 0.2):
        super().__init__()
        self.delay = delay
        self.bookings = 0

    async def book_tee_time(self, request):
        await asyncio.sleep(self.delay)
        self.bookings += 1
        return await super().book_tee_time(request)


class FailingBookingLedger:
    """Booking mirror whose writes always fail, counting the attempts."""

    def __init__(self):
        self.attempts = 0

    async def record_booking(self, record: BookingRecord) -> None:
        self.attempts += 1
        raise RuntimeError("mirror database is down")


def make_backend(client: ScriptedModelClient, name: str = ANTHROPIC) -> Backend:
    return Backend(name=name, client=client, model=f"{name}-test", supports_tools=name != PERPLEXITY)


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def ledger() -> InMemoryBookingLedger:
    return InMemoryBookingLedger()


@pytest.fixture
def provider() -> FixedConfirmationProvider:
    return FixedConfirmationProvider()


@pytest.fixture
def registry(provider, ledger) -> ToolsRegistry:
    return ToolsRegistry(booking_provider=provider, booking_ledger=ledger, tool_timeout_seconds=5.0)


@pytest.fixture
def make_orchestrator(store, registry):
    """Factory building an orchestrator around scripted backends."""

    def factory(*backends: Backend, **kwargs: Any) -> ChatOrchestrator:
        return ChatOrchestrator(
            store=store,
            registry=registry,
            backends={backend.name: backend for backend in backends},
            model_timeout_seconds=kwargs.pop("model_timeout_seconds", 5.0),
            **kwargs,
        )

    return factory


def booking_arguments(**overrides: Any) -> dict[str, Any]:
    """Complete arguments for the booking tool against the mock catalogue, as the model sends them.

    Overrides are given by field name and sent under their camelCase key.
    """
    arguments = {
        "courseId": "valderrama",
        "courseName": "Real Club Valderrama",
        "playDate": "2026-11-20",
        "teeTime": "08:30",
        "playerCount": 2,
        "userName": "Alex Smith",
        "userEmail": "alex@example.com",
    }
    arguments.update({to_camel(name): value for name, value in overrides.items()})
    return arguments
