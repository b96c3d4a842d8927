"""FastAPI app exposing saved chat history next to the NiceGUI page."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import router as sessions_router
from src.client.config import get_client_config
from src.storage.session_store import get_session_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Open the session store and report where history is kept.

    Yields:
        Control to the application while it runs.
    """
    config = get_client_config()
    store = get_session_store()
    logger.info(f"Serving {len(store.list())} saved chats from {config.storage_dir}")
    yield
    logger.info("Ollama Chat API stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    application = FastAPI(
        title="Ollama Chat API",
        description=(
            "Conversation history for a chat front end over a local Ollama server. "
            "Lists, returns and deletes saved chat sessions."
        ),
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(sessions_router)

    @application.get("/health")
    async def health_check() -> dict[str, str]:
        """Check service health status."""
        return {"status": "healthy", "service": "ollama-chat"}

    return application


app = create_app()
