"""Chat turn orchestration: model calls, tool dispatch and persistence."""

import asyncio
import json
from collections.abc import Mapping
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from golfchat.models.conversation import Conversation
from golfchat.models.events import ContentEvent, DoneEvent, ErrorEvent, StatusEvent
from golfchat.models.golf import BookingConfirmation
from golfchat.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMToolDefinition,
    StreamEnd,
    TextBlock,
    TextDelta,
    ToolCallDelta,
    ToolResultBlock,
    ToolUseBlock,
)
from golfchat.prompts import (
    BOOKING_PENDING_STATUS,
    BOOKING_UNRESOLVED_MESSAGE,
    SEARCH_ONLY_SYSTEM_PROMPT,
    booking_system_prompt,
    format_booking_confirmation,
)
from golfchat.services.conversation_store import ConversationNotFoundError, ConversationStore
from golfchat.services.providers import Backend, select_provider
from golfchat.services.streaming import EventChannel
from golfchat.tools.registry import ToolsRegistry
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ITERATIONS = 5
MAX_MESSAGE_CHARS = 4000

UNAVAILABLE_MESSAGE = "Chat AI not available. Please configure ANTHROPIC_API_KEY or PERPLEXITY_API_KEY."
TURN_FAILED_MESSAGE = "I apologize, but I'm experiencing technical difficulties. Please try again."


class TurnInProgressError(Exception):
    """Raised when a conversation already has a turn in flight."""

    def __init__(self, conversation_id: str):
        super().__init__(f"A reply is still being generated for conversation {conversation_id}")
        self.conversation_id = conversation_id


class MessageTooLongError(ValueError):
    """Raised when a user message exceeds the accepted length."""


@dataclass
class TurnResult:
    """What one turn did, for callers and tests."""

    conversation_id: str
    provider: str | None = None
    text: str = ""
    iterations: int = 0
    booking: BookingConfirmation | None = None
    error: str | None = None
    cancelled: bool = False


@dataclass
class Turn:
    """A turn running in the background and the channel carrying its events."""

    channel: EventChannel
    task: "asyncio.Task[TurnResult]"


@dataclass
class PendingToolCall:
    """A tool call being accumulated from stream deltas."""

    id: str
    name: str = ""
    arguments: str = ""


@dataclass
class _ModelResponse:
    text: str = ""
    tool_calls: list[PendingToolCall] = field(default_factory=list)


class ChatOrchestrator:
    """Runs chat turns against the selected model backend.

    A turn appends the user message, replays the conversation to the model
    and streams its answer. With a tool-capable backend the model may call
    tools; their results are fed back and the model is invoked again, at
    most ``max_iterations`` times. A successful booking ends the turn with a
    fixed confirmation text. Whatever text was streamed is persisted as one
    assistant message when the turn settles.
    """

    def __init__(
        self,
        store: ConversationStore,
        registry: ToolsRegistry,
        backends: Mapping[str, Backend],
        preference: str | None = None,
        model_timeout_seconds: float = 60.0,
        max_iterations: int = MAX_ITERATIONS,
    ):
        self.store = store
        self.registry = registry
        self.backends = dict(backends)
        self.preference = preference
        self.model_timeout_seconds = model_timeout_seconds
        self.max_iterations = max_iterations
        self._active: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def available(self) -> bool:
        """Whether any backend is configured."""
        return select_provider(self.backends, self.preference) is not None

    def is_busy(self, conversation_id: str) -> bool:
        """Whether a turn is in flight for the conversation."""
        return conversation_id in self._active

    def validate_message(self, content: str) -> None:
        """Reject messages the service does not accept.

        Raises:
            MessageTooLongError: If the message is over the length limit
        """
        if len(content) > MAX_MESSAGE_CHARS:
            raise MessageTooLongError(
                f"Your message is too long. Please keep messages under {MAX_MESSAGE_CHARS} characters."
            )

    async def ensure_conversation(self, conversation_id: str | None) -> Conversation:
        """Return the conversation, creating one when no id is given.

        Raises:
            ConversationNotFoundError: If an id is given that does not exist
        """
        if conversation_id is None:
            conversation = await self.store.create_conversation()
            logger.info(f"Created conversation {conversation.id}")
            return conversation

        conversation = await self.store.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation

    def start_turn(self, conversation_id: str, content: str) -> Turn:
        """Start a turn in its own task and return its event channel.

        The task outlives the request that started it, so a disconnecting
        client stops receiving events without aborting the turn's bookkeeping.

        Raises:
            MessageTooLongError: If the message is over the length limit
            TurnInProgressError: If the conversation already has a turn in flight
        """
        self.validate_message(content)
        self._claim(conversation_id)

        channel = EventChannel()
        task = asyncio.create_task(self._run_claimed(conversation_id, content, channel))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return Turn(channel=channel, task=task)

    async def run_turn(self, conversation_id: str, content: str, channel: EventChannel | None = None) -> TurnResult:
        """Run a turn to completion in the current task.

        Raises:
            MessageTooLongError: If the message is over the length limit
            TurnInProgressError: If the conversation already has a turn in flight
        """
        self.validate_message(content)
        self._claim(conversation_id)
        return await self._run_claimed(conversation_id, content, channel or EventChannel())

    async def drain(self) -> None:
        """Wait for every in-flight turn to settle."""
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} in-flight turn(s)")
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _claim(self, conversation_id: str) -> None:
        if conversation_id in self._active:
            raise TurnInProgressError(conversation_id)
        self._active.add(conversation_id)

    async def _run_claimed(self, conversation_id: str, content: str, channel: EventChannel) -> TurnResult:
        try:
            return await self._execute_turn(conversation_id, content, channel)
        finally:
            self._active.discard(conversation_id)

    async def _execute_turn(self, conversation_id: str, content: str, channel: EventChannel) -> TurnResult:
        result = TurnResult(conversation_id=conversation_id)
        logger.info(f"Starting turn for conversation {conversation_id}: {content[:50]}...")

        try:
            await self.store.append_message(conversation_id, "user", content)
        except Exception as e:
            logger.error(f"Failed to store user message for {conversation_id}: {e}", exc_info=True)
            result.error = TURN_FAILED_MESSAGE
            channel.send(ErrorEvent(error=result.error))
            return result

        backend = select_provider(self.backends, self.preference)
        if backend is None:
            logger.error("No AI provider configured, cannot answer")
            result.error = UNAVAILABLE_MESSAGE
            channel.send(ErrorEvent(error=result.error))
            return result

        result.provider = backend.name
        logger.info(f"Using {backend.name} ({backend.model}) for conversation {conversation_id}")

        try:
            history = await self._load_history(conversation_id)
            if backend.supports_tools:
                await self._run_tool_loop(backend, history, channel, result)
            else:
                await self._run_text_only(backend, history, channel, result)
        except TimeoutError:
            logger.error(f"{backend.name} did not respond within {self.model_timeout_seconds}s")
            result.error = TURN_FAILED_MESSAGE
        except Exception as e:
            logger.error(f"Turn failed for conversation {conversation_id}: {e}", exc_info=True)
            result.error = TURN_FAILED_MESSAGE

        if result.cancelled:
            logger.info(f"Client went away during turn for conversation {conversation_id}")

        await self._persist_reply(result)

        if result.error:
            channel.send(ErrorEvent(error=result.error))
        else:
            channel.send(DoneEvent(conversation_id=conversation_id))

        logger.info(
            f"Finished turn for conversation {conversation_id}: {result.iterations} model call(s), "
            f"{len(result.text)} chars{', booked' if result.booking else ''}"
        )
        return result

    async def _run_tool_loop(
        self, backend: Backend, history: list[LLMMessage], channel: EventChannel, result: TurnResult
    ) -> None:
        tools = self.registry.get_tool_definitions()
        system_prompt = booking_system_prompt(web_search=self.registry.has_tool("web_search_golf"))
        messages = list(history)

        while result.iterations < self.max_iterations:
            if channel.closed:
                result.cancelled = True
                return

            result.iterations += 1
            response = await self._stream_iteration(backend, messages, system_prompt, tools, channel, result)
            if result.cancelled or not response.tool_calls:
                return

            messages.append(LLMMessage(role="assistant", content=self._assistant_blocks(response)))

            tool_results: list[ContentBlock] = []
            for call in response.tool_calls:
                if channel.closed:
                    result.cancelled = True
                    return

                status = self.registry.status_message(call.name)
                if status:
                    channel.send(StatusEvent(message=status))

                outcome = await self.registry.execute(call.name, call.arguments)
                if outcome.pending is not None:
                    # An in-flight booking is never handed back to the model for a retry
                    channel.send(StatusEvent(message=BOOKING_PENDING_STATUS))
                    outcome = await self.registry.settle(outcome)

                if outcome.unresolved:
                    result.text += BOOKING_UNRESOLVED_MESSAGE
                    channel.send(ContentEvent(content=BOOKING_UNRESOLVED_MESSAGE))
                    logger.warning(f"{call.name} outcome unknown for {result.conversation_id}, ending turn")
                    return

                tool_results.append(
                    ToolResultBlock(tool_use_id=call.id, content=outcome.to_json(), is_error=outcome.is_error)
                )

                if outcome.booking is not None:
                    confirmation = format_booking_confirmation(outcome.booking)
                    result.booking = outcome.booking
                    result.text += confirmation
                    channel.send(ContentEvent(content=confirmation))
                    logger.info(f"Booking {outcome.booking.confirmation_number} confirmed, ending turn")
                    return

            messages.append(LLMMessage(role="user", content=tool_results))

        logger.warning(f"Reached {self.max_iterations} model calls for conversation {result.conversation_id}")

    async def _run_text_only(
        self, backend: Backend, history: list[LLMMessage], channel: EventChannel, result: TurnResult
    ) -> None:
        result.iterations = 1
        response = await self._stream_iteration(backend, history, SEARCH_ONLY_SYSTEM_PROMPT, None, channel, result)
        if response.tool_calls:
            logger.warning(f"{backend.name} cannot call tools, ignoring {len(response.tool_calls)} tool call(s)")

    async def _stream_iteration(
        self,
        backend: Backend,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None,
        channel: EventChannel,
        result: TurnResult,
    ) -> _ModelResponse:
        """Invoke the model once, forwarding text as it arrives."""
        response = _ModelResponse()
        calls: dict[int, PendingToolCall] = {}

        async with asyncio.timeout(self.model_timeout_seconds):
            async with aclosing(backend.client.stream_chat(messages, system_prompt, tools)) as stream:
                async for chunk in stream:
                    if channel.closed:
                        result.cancelled = True
                        break

                    if isinstance(chunk, TextDelta):
                        if not chunk.text:
                            continue
                        response.text += chunk.text
                        result.text += chunk.text
                        channel.send(ContentEvent(content=chunk.text))
                    elif isinstance(chunk, ToolCallDelta):
                        call = calls.get(chunk.index)
                        if call is None:
                            call = calls[chunk.index] = PendingToolCall(id=chunk.id or f"call_{chunk.index}")
                        if chunk.name:
                            call.name = chunk.name
                        call.arguments += chunk.arguments
                    elif isinstance(chunk, StreamEnd):
                        break

        response.tool_calls = [calls[index] for index in sorted(calls)]
        return response

    def _assistant_blocks(self, response: _ModelResponse) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        if response.text:
            blocks.append(TextBlock(text=response.text))
        for call in response.tool_calls:
            blocks.append(ToolUseBlock(id=call.id, name=call.name, input=self._decoded_arguments(call.arguments)))
        return blocks

    def _decoded_arguments(self, arguments: str) -> dict[str, Any]:
        # Echoed back to the model; the registry reports the actual decode error
        try:
            decoded = json.loads(arguments) if arguments.strip() else {}
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}

    async def _load_history(self, conversation_id: str) -> list[LLMMessage]:
        """Replay stored messages, merging consecutive messages of the same role."""
        history: list[LLMMessage] = []
        for message in await self.store.list_messages(conversation_id):
            if history and history[-1].role == message.role:
                history[-1] = LLMMessage(role=message.role, content=f"{history[-1].content}\n\n{message.content}")
            else:
                history.append(LLMMessage(role=message.role, content=message.content))
        return history

    async def _persist_reply(self, result: TurnResult) -> None:
        if not result.text:
            return
        try:
            await self.store.append_message(result.conversation_id, "assistant", result.text)
        except Exception as e:
            logger.error(f"Failed to store assistant reply for {result.conversation_id}: {e}", exc_info=True)
            if result.error is None:
                result.error = TURN_FAILED_MESSAGE
