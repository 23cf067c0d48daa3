"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class LLMMessage(BaseModel):
    """A message for LLM conversation."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]

    def text(self) -> str:
        """Return the plain text of this message, ignoring tool blocks."""
        if isinstance(self.content, str):
            return self.content
        return "".join(block.text for block in self.content if isinstance(block, TextBlock))


class LLMToolDefinition(BaseModel):
    """Complete tool definition advertised to the LLM."""

    name: str
    description: str
    input_schema: dict[str, Any]


# Streaming chunks emitted by model clients
@dataclass
class TextDelta:
    """A fragment of assistant text."""

    text: str


@dataclass
class ToolCallDelta:
    """A fragment of a tool call.

    The first delta for a given index carries the call id and tool name;
    later deltas only carry more argument JSON.
    """

    index: int
    arguments: str = ""
    id: str | None = None
    name: str | None = None


@dataclass
class StreamEnd:
    """Terminal marker of one model invocation."""

    stop_reason: str | None = None


StreamChunk = TextDelta | ToolCallDelta | StreamEnd
