"""Client configuration with environment variable loading.

Pydantic-based configuration for the Ollama inference client and the local
session storage.
"""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class ClientConfig(BaseModel):
    """Configuration for the Ollama chat client.

    Attributes:
        base_url: Ollama server URL.
        model: Model tag to generate with.
        temperature: Sampling temperature (0.0 = deterministic, 2.0 = creative).
        request_timeout: Seconds to wait on connect and between stream reads.
        storage_dir: Directory holding the saved session history.
        format_instructions: Append the markdown formatting hint to prompts.
    """

    base_url: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
        description="Ollama server URL",
    )
    model: str = Field(
        default_factory=lambda: os.getenv("OLLAMA_MODEL", "llama3.1:8b"),
        description="Model to use",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for response generation",
    )
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("OLLAMA_TIMEOUT", "120")),
        gt=0.0,
        description="Request timeout in seconds",
    )
    storage_dir: str = Field(
        default_factory=lambda: os.getenv("CHAT_STORAGE_DIR", "data"),
        description="Directory for saved chat history",
    )
    format_instructions: bool = Field(
        default_factory=lambda: _env_flag("OLLAMA_FORMAT_HINT", True),
        description="Ask the model to answer in markdown",
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and drop any trailing slash."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("OLLAMA_BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """Validate that a model tag is provided."""
        if not v or not v.strip():
            raise ValueError("Model required. Set OLLAMA_MODEL in .env")
        return v.strip()


def get_client_config() -> ClientConfig:
    """Create client configuration from environment.

    Returns:
        Configured ClientConfig instance.

    Raises:
        ValueError: If an environment value is invalid.
    """
    return ClientConfig()
