"""Anthropic API client with streaming, rate limiting and token budgeting."""

import asyncio
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from golfchat.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMToolDefinition,
    StreamChunk,
    StreamEnd,
    TextBlock,
    TextDelta,
    ToolCallDelta,
    ToolResultBlock,
)
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-5"
    max_tokens: int = 2048
    temperature: float = 0.3
    # A failed model call ends the turn; the user resends
    max_retries: int = 0

    # Token limits for truncation
    max_conversation_tokens: int = 200000
    token_headroom: int = 2000


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within both limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class AnthropicClient:
    """Streaming Anthropic Messages API client.

    Translates the SDK's raw stream events into provider-agnostic chunks:
    text deltas, tool call deltas (name first, then argument JSON fragments)
    and a terminal StreamEnd.
    """

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter

    def __init__(self, api_key: str, config: AnthropicConfig | None = None, client: AsyncAnthropic | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            config: Client configuration
            client: Optional preconfigured SDK client (used by tests)
        """
        if not api_key:
            raise ValueError("An Anthropic API key is required")

        self.config = config or AnthropicConfig()
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=self.config.max_retries)
        self.rate_limiter = AnthropicRateLimiter()

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def aclose(self) -> None:
        await self.client.close()

    async def stream_chat(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        **kwargs,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one model response.

        Args:
            messages: Conversation history including in-turn tool exchanges
            system_prompt: System prompt for Claude
            tools: Tools the model may call
            **kwargs: Overrides for model, max_tokens, temperature

        Yields:
            TextDelta, ToolCallDelta and finally one StreamEnd
        """
        anthropic_messages = [AnthropicMessage(role=msg.role, content=msg.content) for msg in messages]
        anthropic_tools = (
            [AnthropicTool(name=t.name, description=t.description, input_schema=t.input_schema) for t in tools]
            if tools
            else None
        )
        truncated_messages = self.truncate_conversation(anthropic_messages, system_prompt, anthropic_tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": [msg.model_dump() for msg in truncated_messages],
            "stream": True,
        }
        if anthropic_tools:
            request_params["tools"] = [tool.model_dump() for tool in anthropic_tools]

        logger.debug(
            f"Streaming Anthropic call with model {request_params['model']}, "
            f"{len(truncated_messages)} messages, {len(anthropic_tools or [])} tools"
        )
        stream = await self.client.messages.create(**request_params)

        stop_reason: str | None = None
        async for event in stream:
            if event.type == "content_block_start" and event.content_block.type == "tool_use":
                yield ToolCallDelta(index=event.index, id=event.content_block.id, name=event.content_block.name)
            elif event.type == "content_block_delta":
                if event.delta.type == "text_delta":
                    yield TextDelta(text=event.delta.text)
                elif event.delta.type == "input_json_delta":
                    yield ToolCallDelta(index=event.index, arguments=event.delta.partial_json)
            elif event.type == "message_delta":
                stop_reason = event.delta.stop_reason

        logger.debug(f"Anthropic stream finished with stop reason {stop_reason}")
        yield StreamEnd(stop_reason=stop_reason)

    def _message_text(self, message: AnthropicMessage) -> str:
        if isinstance(message.content, str):
            return message.content
        parts = []
        for block in message.content:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, ToolResultBlock):
                parts.append(block.content)
            else:
                parts.append(str(block.input))
        return "".join(parts)

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def truncate_conversation(
        self, messages: list[AnthropicMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[AnthropicMessage]:
        """Drop the oldest messages until the conversation fits the context window.

        The result always starts with a plain user message, as the API
        requires, so a tool exchange is never cut in half.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)
        if tools:
            tool_content = "".join(tool.name + tool.description + str(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_message_tokens(tool_content)

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(self._message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        while truncated_messages and not (
            truncated_messages[0].role == "user" and isinstance(truncated_messages[0].content, str)
        ):
            truncated_messages.pop(0)

        if len(truncated_messages) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages
