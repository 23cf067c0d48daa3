"""Producer/consumer channel between a chat turn and its transport."""

import asyncio
from collections.abc import AsyncIterator

from golfchat.models.events import ChatEvent, encode_sse, is_terminal
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


class EventChannel:
    """Single-producer, single-consumer stream of chat events.

    The turn sends events, the transport iterates them. Exactly one terminal
    event (done or error) is ever delivered: once one has been sent every
    later send is dropped. ``close()`` is called by the consumer when it goes
    away; the producer sees ``closed`` and stops doing work for nobody.
    """

    def __init__(self):
        self._queue: asyncio.Queue[ChatEvent] = asyncio.Queue()
        self._terminated = False
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether the consumer has gone away."""
        return self._closed

    @property
    def terminated(self) -> bool:
        """Whether a terminal event has been sent."""
        return self._terminated

    def send(self, event: ChatEvent) -> bool:
        """Queue an event for the consumer.

        Returns:
            False when the event was dropped
        """
        if self._terminated or self._closed:
            return False
        if is_terminal(event):
            self._terminated = True
        self._queue.put_nowait(event)
        return True

    def close(self) -> None:
        """Mark the consumer as gone and discard anything still queued."""
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    def __aiter__(self) -> AsyncIterator[ChatEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChatEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if is_terminal(event):
                return


async def sse_event_stream(channel: EventChannel) -> AsyncIterator[str]:
    """Encode channel events as server-sent-event frames.

    The channel is closed when the consumer stops, whether after the terminal
    event or because the client disconnected.
    """
    try:
        async for event in channel:
            yield encode_sse(event)
    finally:
        if not channel.terminated:
            logger.info("Client disconnected before the turn finished")
        channel.close()
