"""Conversation, message and API payload models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageRole = Literal["user", "assistant"]

DEFAULT_CONVERSATION_TITLE = "New Chat"


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys for the browser widget."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Conversation(CamelModel):
    """A chat conversation. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    created_at: datetime


class Message(CamelModel):
    """A persisted message of a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime
    sequence: int


class ConversationDetail(Conversation):
    """A conversation together with its ordered messages."""

    messages: list[Message] = Field(default_factory=list)


class CreateConversationRequest(CamelModel):
    """Request model for creating a conversation."""

    title: str | None = Field(default=None, max_length=200)


class SendMessageRequest(CamelModel):
    """Request model for posting a user message to a known conversation."""

    content: str = Field(..., min_length=1)


class ChatRequest(SendMessageRequest):
    """Request model for the chat endpoint; creates a conversation when no id is given."""

    conversation_id: str | None = None


class ChatStatusResponse(CamelModel):
    """Which AI providers are configured and what they enable."""

    status: str
    providers: dict[str, bool]
    capabilities: dict[str, bool]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
