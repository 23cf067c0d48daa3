"""Main FastAPI application."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from golfchat import __version__
from golfchat.api.endpoints import router
from golfchat.config import load_settings
from golfchat.container import ChatContainer, build_container
from golfchat.utils.logging import LogConfig, setup_logging


def create_app(container: ChatContainer | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Prebuilt collaborators; built from the environment at startup when omitted

    Returns:
        The configured application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if container is not None:
            yield
            return

        settings = load_settings()
        setup_logging(LogConfig(level=settings.log_level))
        app.state.container = await build_container(settings)
        try:
            yield
        finally:
            await app.state.container.aclose()

    app = FastAPI(
        title="PlayGolfSpainNow Chat",
        description=(
            "Conversational golf concierge: finds courses in Spain, checks tee times and books them, "
            "streaming replies as server-sent events."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Chat",
                "description": "Send messages and stream the assistant's reply.",
            },
            {
                "name": "Conversations",
                "description": "Create, list, read and delete conversations.",
            },
            {
                "name": "Health",
                "description": "Service health monitoring and status checks.",
            },
        ],
    )

    if container is not None:
        app.state.container = container

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("golfchat.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
