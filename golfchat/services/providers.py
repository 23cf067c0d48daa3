"""Language-model backends and the policy for choosing one per turn."""

from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass
from typing import Protocol

from golfchat.clients.anthropic import AnthropicClient, AnthropicConfig
from golfchat.clients.perplexity import PerplexityClient, PerplexityConfig
from golfchat.config import Settings
from golfchat.models.llm import LLMMessage, LLMToolDefinition, StreamChunk
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

ANTHROPIC = "anthropic"
PERPLEXITY = "perplexity"

# Tool calling unlocks booking, so the tool-capable backend comes first
DEFAULT_ORDER = (ANTHROPIC, PERPLEXITY)


class ModelClient(Protocol):
    """A streaming chat model client."""

    def stream_chat(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> AsyncIterator[StreamChunk]: ...


@dataclass(frozen=True)
class Backend:
    """A configured language-model backend and what it can do."""

    name: str
    client: ModelClient
    model: str
    supports_tools: bool


def build_backends(settings: Settings) -> dict[str, Backend]:
    """Construct a backend for every provider that has credentials.

    Args:
        settings: Application settings

    Returns:
        Backends keyed by name; empty when no provider is configured
    """
    backends: dict[str, Backend] = {}

    if settings.anthropic_api_key:
        config = AnthropicConfig(model=settings.anthropic_model, max_tokens=settings.anthropic_max_tokens)
        backends[ANTHROPIC] = Backend(
            name=ANTHROPIC,
            client=AnthropicClient(api_key=settings.anthropic_api_key, config=config),
            model=config.model,
            supports_tools=True,
        )
        logger.info(f"Anthropic configured for conversation and tool calling ({config.model})")

    if settings.perplexity_api_key:
        config = PerplexityConfig(
            base_url=settings.perplexity_base_url,
            model=settings.perplexity_model,
            timeout=settings.model_timeout_seconds,
        )
        backends[PERPLEXITY] = Backend(
            name=PERPLEXITY,
            client=PerplexityClient(api_key=settings.perplexity_api_key, config=config),
            model=config.model,
            supports_tools=False,
        )
        logger.info(f"Perplexity configured for real-time golf search ({config.model})")

    if not backends:
        logger.warning("No AI provider configured. Set ANTHROPIC_API_KEY and/or PERPLEXITY_API_KEY.")

    return backends


def select_provider(backends: Mapping[str, Backend], preference: str | None = None) -> Backend | None:
    """Choose the backend for a turn.

    An explicit preference wins when that backend is available. Otherwise the
    tool-capable backend is preferred, falling back to the search-only one.

    Args:
        backends: Available backends keyed by name
        preference: Optional backend name requested by configuration

    Returns:
        The selected backend, or None when no backend is configured
    """
    if preference:
        if preference in backends:
            return backends[preference]
        logger.warning(f"Preferred provider {preference!r} is not available, using default order")

    for name in DEFAULT_ORDER:
        if name in backends:
            return backends[name]

    # Any other registered backend, tool-capable ones first
    remaining = sorted(backends.values(), key=lambda b: not b.supports_tools)
    return remaining[0] if remaining else None
