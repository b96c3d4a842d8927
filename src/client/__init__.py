"""Inference client for the locally hosted Ollama server.

Responsibilities:
    - Environment-driven client configuration
    - Streaming and non-streaming calls to the generate endpoint
    - Mapping HTTP failures to chat transport errors

Maintains clean separation from conversation state, which lives in src.chat.
"""

from src.client.config import ClientConfig, get_client_config
from src.client.ollama_service import OllamaService

__all__ = ["ClientConfig", "OllamaService", "get_client_config"]
