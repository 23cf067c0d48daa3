"""Base types and definitions for tools."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from golfchat.models.golf import BookingConfirmation


@dataclass
class ToolResult:
    """Outcome of one tool dispatch, fed back to the model as JSON."""

    name: str
    payload: dict[str, Any]
    is_error: bool = False
    booking: BookingConfirmation | None = None
    # A side-effecting call that outlived its timeout and is still running
    pending: "asyncio.Future[ToolResult] | None" = None
    # The call may or may not have taken effect
    unresolved: bool = False

    @classmethod
    def ok(cls, name: str, payload: dict[str, Any], booking: BookingConfirmation | None = None) -> "ToolResult":
        return cls(name=name, payload=payload, booking=booking)

    @classmethod
    def failure(cls, name: str, message: str, **extra: Any) -> "ToolResult":
        return cls(name=name, payload={**extra, "error": message}, is_error=True)

    @classmethod
    def still_running(cls, name: str, task: "asyncio.Future[ToolResult]") -> "ToolResult":
        return cls(
            name=name,
            payload={"error": f"{name} is still being processed, do not call it again"},
            is_error=True,
            pending=task,
        )

    @classmethod
    def outcome_unknown(cls, name: str) -> "ToolResult":
        return cls(
            name=name,
            payload={"error": f"The outcome of {name} is unknown. Do not call it again."},
            is_error=True,
            unresolved=True,
        )

    def to_json(self) -> str:
        return json.dumps(self.payload, default=str)


class ToolInput(BaseModel):
    """Base for tool arguments: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


ToolHandler = Callable[[Any], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the AI assistant."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    status_message: str | None = None
    # Side-effecting calls are never cancelled once dispatched
    side_effecting: bool = False

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema(by_alias=True)

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)
