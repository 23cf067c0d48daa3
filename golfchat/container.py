"""Application wiring: every long-lived collaborator is built here once."""

from dataclasses import dataclass

from golfchat.clients.golfnow import BookingProvider, GolfNowClient, MockBookingProvider
from golfchat.clients.perplexity import PerplexityClient
from golfchat.config import Settings
from golfchat.services.chat import ChatOrchestrator
from golfchat.services.providers import PERPLEXITY, Backend, build_backends
from golfchat.services.storage import Storage, initialize_storage
from golfchat.tools.registry import ToolsRegistry
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ChatContainer:
    """Holds the collaborators shared by all requests."""

    settings: Settings
    storage: Storage
    booking_provider: BookingProvider
    backends: dict[str, Backend]
    registry: ToolsRegistry
    orchestrator: ChatOrchestrator

    async def aclose(self) -> None:
        """Let in-flight turns settle, then release clients and the database."""
        await self.orchestrator.drain()

        closables = [backend.client for backend in self.backends.values()]
        closables.append(self.booking_provider)
        for closable in closables:
            aclose = getattr(closable, "aclose", None)
            if aclose is not None:
                await aclose()

        await self.storage.aclose()
        logger.info("Chat container closed")


def build_booking_provider(settings: Settings) -> BookingProvider:
    """GolfNow when credentials are configured, the mock provider otherwise."""
    if settings.golfnow_configured:
        logger.info("Using GolfNow booking provider")
        return GolfNowClient(
            username=settings.golfnow_username,
            password=settings.golfnow_password,
            channel_id=settings.golfnow_channel_id,
            base_url=settings.golfnow_base_url,
            affiliate_id=settings.golfnow_affiliate_id,
            timeout=settings.tool_timeout_seconds,
        )

    logger.info("GolfNow credentials not configured, using mock booking provider")
    return MockBookingProvider(affiliate_id=settings.golfnow_affiliate_id)


async def build_container(settings: Settings) -> ChatContainer:
    """Build storage, clients, tools and the orchestrator from settings.

    Args:
        settings: Application settings

    Returns:
        A ready container; close it with ``aclose()`` on shutdown
    """
    storage = await initialize_storage(settings.database_url)
    booking_provider = build_booking_provider(settings)
    backends = build_backends(settings)

    search_client = None
    if PERPLEXITY in backends and isinstance(backends[PERPLEXITY].client, PerplexityClient):
        search_client = backends[PERPLEXITY].client

    registry = ToolsRegistry(
        booking_provider=booking_provider,
        booking_ledger=storage.bookings,
        search_client=search_client,
        tool_timeout_seconds=settings.tool_timeout_seconds,
        settle_timeout_seconds=settings.booking_settle_seconds,
    )
    orchestrator = ChatOrchestrator(
        store=storage.conversations,
        registry=registry,
        backends=backends,
        preference=settings.chat_provider,
        model_timeout_seconds=settings.model_timeout_seconds,
    )

    logger.info(f"Chat container ready with providers {sorted(backends)} and tools {registry.get_tool_names()}")
    return ChatContainer(
        settings=settings,
        storage=storage,
        booking_provider=booking_provider,
        backends=backends,
        registry=registry,
        orchestrator=orchestrator,
    )
