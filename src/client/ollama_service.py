"""Ollama inference client with streaming support.

Talks to a locally hosted Ollama server over ``POST /api/generate``. The
streaming call hands raw response bytes to the caller untouched; framing and
decoding belong to src.streaming so they can be tested without a server.

The continuation ``context`` returned on the final frame is passed back
verbatim on the next request, which is how Ollama keeps multi-turn state
without the client resending the conversation.
"""

import logging
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import asynccontextmanager

import httpx

from src.chat.errors import TransportError
from src.client.config import ClientConfig, get_client_config
from src.models.schemas import GenerateRequest

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/generate"

FORMAT_HINT = (
    "\n\nPlease format your response using markdown. Use **bold** for emphasis, "
    "- for bullet points, 1. for numbered lists, # for headings. If there are any "
    "scientific concepts, use $formula$ for inline math and $$formula$$ for block "
    "equations. Use `code` for inline code and ``` for code blocks."
)


class OllamaService:
    """Client for the Ollama generate endpoint.

    Args:
        config: Optional client configuration. Loads from environment if not
            provided.
        client: Optional shared httpx client. When omitted, a client is
            created per request and closed with it.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or get_client_config()
        self._client = client

    @property
    def config(self) -> ClientConfig:
        return self._config

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._config.request_timeout) as client:
            yield client

    def _build_request(
        self,
        prompt: str,
        images: Sequence[str],
        context: Sequence[int] | None,
    ) -> GenerateRequest:
        return GenerateRequest(
            model=self._config.model,
            prompt=prompt,
            options={"temperature": self._config.temperature},
            images=list(images) or None,
            context=list(context) if context else None,
        )

    async def send_turn(
        self,
        prompt: str,
        images: Sequence[str] = (),
        context: Sequence[int] | None = None,
    ) -> AsyncGenerator[bytes]:
        """Stream the raw response body for one turn.

        The HTTP response is closed when the generator finishes, is closed
        early, or is cancelled.

        Args:
            prompt: Prompt text for this turn.
            images: Base64-encoded images to send.
            context: Continuation context from the previous turn.

        Yields:
            Response body fragments as they arrive.

        Raises:
            TransportError: On connection failures and non-2xx responses.
        """
        if self._config.format_instructions:
            prompt = prompt + FORMAT_HINT
        body = self._build_request(prompt, images, context)
        url = f"{self._config.base_url}{GENERATE_PATH}"

        try:
            async with self._http() as client:
                async with client.stream(
                    "POST",
                    url,
                    json=body.model_dump(exclude_none=True),
                ) as response:
                    if response.is_error:
                        detail = (await response.aread()).decode("utf-8", errors="replace")
                        raise TransportError(
                            f"Ollama returned HTTP {response.status_code}: {detail.strip()}"
                        )
                    logger.debug(f"Streaming {self._config.model} response from {url}")
                    async for fragment in response.aiter_bytes():
                        yield fragment
        except httpx.RequestError as e:
            raise TransportError(f"Connection to Ollama failed: {e}") from e
