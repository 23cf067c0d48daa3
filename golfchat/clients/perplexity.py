"""Perplexity client for search-grounded answers (no tool calling)."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx
from openai import AsyncOpenAI

from golfchat.models.llm import LLMMessage, LLMToolDefinition, StreamChunk, StreamEnd, TextDelta
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

SEARCH_SYSTEM_PROMPT = """You are a golf research assistant specializing in Spanish golf courses.
Provide accurate, up-to-date information about golf courses in Spain, focusing on:
- Current green fees and prices
- Course ratings and reviews
- Facilities and amenities
- Contact information
- Best times to play
- Weather conditions
Be concise but thorough. Include specific details when available."""


@dataclass
class PerplexityConfig:
    """Configuration for the Perplexity chat completions endpoint."""

    base_url: str = "https://api.perplexity.ai"
    model: str = "sonar"
    max_tokens: int = 2048
    search_max_tokens: int = 1024
    timeout: float = 60.0


class PerplexityClient:
    """Client for Perplexity's OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str,
        config: PerplexityConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize Perplexity client.

        Args:
            api_key: Perplexity API key
            config: Client configuration
            http_client: Optional HTTP client override (used by tests)
        """
        if not api_key:
            raise ValueError("A Perplexity API key is required")

        self.config = config or PerplexityConfig()
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_retries=0,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        await self.client.close()

    async def stream_chat(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a text-only completion.

        Tools are not supported by this backend and are ignored.
        """
        if tools:
            logger.warning("Perplexity does not support tool calling, ignoring tools")

        chat_messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            *({"role": msg.role, "content": msg.text()} for msg in messages),
        ]

        finish_reason: str | None = None
        stream = await self.client.chat.completions.create(
            model=self.config.model,
            messages=chat_messages,
            max_tokens=self.config.max_tokens,
            stream=True,
        )
        async with stream:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta and choice.delta.content:
                    yield TextDelta(text=choice.delta.content)
                finish_reason = choice.finish_reason or finish_reason

        yield StreamEnd(stop_reason=finish_reason)

    async def search(self, query: str) -> str:
        """Answer a one-off golf research question with live web results."""
        logger.info(f"Perplexity search: {query}")
        response = await self.client.chat.completions.create(
            model=self.config.model,
            messages=[
                {"role": "system", "content": SEARCH_SYSTEM_PROMPT},
                {"role": "user", "content": query},
            ],
            max_tokens=self.config.search_max_tokens,
        )
        result = response.choices[0].message.content if response.choices else None
        return result or "No results found"
