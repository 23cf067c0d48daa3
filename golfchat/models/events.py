"""Events produced by a chat turn and consumed by the transport."""

import json
from typing import Any, Literal

from pydantic import BaseModel


class ContentEvent(BaseModel):
    """A fragment of assistant text, forwarded as soon as it arrives."""

    type: Literal["content"] = "content"
    content: str

    def wire_payload(self) -> dict[str, Any]:
        return {"content": self.content}


class StatusEvent(BaseModel):
    """A progress notice, e.g. before a slow tool call."""

    type: Literal["status"] = "status"
    status: str = "searching"
    message: str

    def wire_payload(self) -> dict[str, Any]:
        return {"status": self.status, "message": self.message}


class DoneEvent(BaseModel):
    """The turn completed."""

    type: Literal["done"] = "done"
    conversation_id: str | None = None

    def wire_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"done": True}
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id
        return payload


class ErrorEvent(BaseModel):
    """The turn failed; the widget shows a retry prompt."""

    type: Literal["error"] = "error"
    error: str

    def wire_payload(self) -> dict[str, Any]:
        return {"error": self.error}


ChatEvent = ContentEvent | StatusEvent | DoneEvent | ErrorEvent


def is_terminal(event: ChatEvent) -> bool:
    """Whether the event ends the stream."""
    return isinstance(event, DoneEvent | ErrorEvent)


def encode_sse(event: ChatEvent) -> str:
    """Encode an event as one server-sent-event frame."""
    return f"data: {json.dumps(event.wire_payload())}\n\n"
