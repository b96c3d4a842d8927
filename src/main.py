"""Command-line entry point for Ollama Chat.

Integrated mode serves the history API and the chat page from one uvicorn
process; RUN_MODE=ui starts the chat page alone.
"""

import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def run_integrated() -> None:
    """Serve /sessions and the chat page from one app on HOST:PORT."""
    import uvicorn
    from nicegui import ui

    from src.api.app import create_app
    from src.client.config import get_client_config
    from src.ui.chat_page import chat_page  # noqa: F401 - Registers the page

    config = get_client_config()
    app = create_app()

    ui.run_with(
        app,
        title="Ollama Chat",
        favicon="🦙",
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "ollama-chat-secret"),
    )

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Chatting with {config.model} at {config.base_url}")
    logger.info(f"Chat page on http://{host}:{port}/, history API under /sessions")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


def run_ui_only() -> None:
    """Run only the NiceGUI chat UI on port 8080, without the history API."""
    from src.ui.chat_page import main as run_ui

    logger.info("Starting chat UI on http://localhost:8080")
    run_ui()


def main() -> None:
    """Start in RUN_MODE (integrated by default, or ui)."""
    mode = os.getenv("RUN_MODE", "integrated").lower()

    if mode == "ui":
        run_ui_only()
    else:
        run_integrated()


if __name__ == "__main__":
    main()
