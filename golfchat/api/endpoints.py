"""API endpoints for the golf chat service."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse

from golfchat import __version__
from golfchat.container import ChatContainer
from golfchat.models.conversation import (
    ChatRequest,
    ChatStatusResponse,
    Conversation,
    ConversationDetail,
    CreateConversationRequest,
    HealthResponse,
    SendMessageRequest,
)
from golfchat.services.chat import MessageTooLongError, TurnInProgressError
from golfchat.services.conversation_store import ConversationNotFoundError
from golfchat.services.providers import ANTHROPIC, PERPLEXITY
from golfchat.services.streaming import sse_event_stream
from golfchat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


def get_container(request: Request) -> ChatContainer:
    """Dependency returning the application's container."""
    return request.app.state.container


@router.get("/api/conversations", response_model=list[Conversation], tags=["Conversations"])
async def list_conversations(container: ChatContainer = Depends(get_container)) -> list[Conversation]:
    """List conversations, most recent first."""
    return await container.storage.conversations.list_conversations()


@router.post(
    "/api/conversations",
    response_model=Conversation,
    status_code=status.HTTP_201_CREATED,
    tags=["Conversations"],
)
async def create_conversation(
    request: CreateConversationRequest | None = None,
    container: ChatContainer = Depends(get_container),
) -> Conversation:
    """Create an empty conversation."""
    title = request.title if request else None
    conversation = await container.storage.conversations.create_conversation(title)
    logger.info(f"Created conversation {conversation.id}")
    return conversation


@router.get("/api/conversations/{conversation_id}", response_model=ConversationDetail, tags=["Conversations"])
async def get_conversation(
    conversation_id: str, container: ChatContainer = Depends(get_container)
) -> ConversationDetail:
    """Return a conversation with its messages in order."""
    store = container.storage.conversations
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = await store.list_messages(conversation_id)
    return ConversationDetail(**conversation.model_dump(), messages=messages)


@router.delete(
    "/api/conversations/{conversation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Conversations"],
)
async def delete_conversation(conversation_id: str, container: ChatContainer = Depends(get_container)) -> Response:
    """Delete a conversation and its messages."""
    await container.storage.conversations.delete_conversation(conversation_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/api/conversations/{conversation_id}/messages", tags=["Chat"])
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    container: ChatContainer = Depends(get_container),
) -> StreamingResponse:
    """Post a user message and stream the assistant's reply as server-sent events."""
    return await _stream_turn(container, conversation_id, request.content)


@router.post("/api/chat", tags=["Chat"])
async def chat(request: ChatRequest, container: ChatContainer = Depends(get_container)) -> StreamingResponse:
    """Stream a reply, starting a new conversation when no id is given.

    The conversation id is reported in the final ``done`` event.
    """
    return await _stream_turn(container, request.conversation_id, request.content)


@router.get("/api/chat/status", response_model=ChatStatusResponse, tags=["Chat"])
async def chat_status(container: ChatContainer = Depends(get_container)) -> ChatStatusResponse:
    """Report which AI providers are configured and what they enable."""
    backends = container.backends
    tool_capable = any(backend.supports_tools for backend in backends.values())
    return ChatStatusResponse(
        status="ok" if backends else "unavailable",
        providers={ANTHROPIC: ANTHROPIC in backends, PERPLEXITY: PERPLEXITY in backends},
        capabilities={
            "functionCalling": tool_capable,
            "webSearch": container.registry.has_tool("web_search_golf") or PERPLEXITY in backends,
            "booking": tool_capable,
        },
    )


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )


async def _stream_turn(container: ChatContainer, conversation_id: str | None, content: str) -> StreamingResponse:
    orchestrator = container.orchestrator
    try:
        # Fail fast on bad input before creating a conversation for it
        orchestrator.validate_message(content)
        conversation = await orchestrator.ensure_conversation(conversation_id)
        turn = orchestrator.start_turn(conversation.id, content)
    except ConversationNotFoundError as e:
        logger.warning(f"Message for unknown conversation {conversation_id}")
        raise HTTPException(status_code=404, detail="Conversation not found") from e
    except TurnInProgressError as e:
        logger.warning(str(e))
        raise HTTPException(status_code=409, detail=str(e)) from e
    except MessageTooLongError as e:
        logger.warning(f"Rejected message for conversation {conversation_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return StreamingResponse(sse_event_stream(turn.channel), media_type="text/event-stream", headers=SSE_HEADERS)
