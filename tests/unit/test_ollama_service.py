"""Unit tests for OllamaService using an in-process HTTP transport."""

import json

import httpx
import pytest
import pytest_check as check

from src.chat.errors import TransportError
from src.client.config import ClientConfig
from src.client.ollama_service import FORMAT_HINT, OllamaService


def _config(**overrides) -> ClientConfig:
    values = {
        "base_url": "http://ollama.test",
        "model": "llama3.1:8b",
        "format_instructions": False,
    }
    values.update(overrides)
    return ClientConfig(**values)


def _service(handler, **overrides) -> OllamaService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaService(config=_config(**overrides), client=client)


async def _read_all(service: OllamaService, *args, **kwargs) -> bytes:
    return b"".join([fragment async for fragment in service.send_turn(*args, **kwargs)])


class TestSendTurn:
    """Tests for the streaming generate call."""

    async def test_request_body(self) -> None:
        """The body carries model, prompt, images, context and options."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b'{"response":"ok","done":true}\n')

        await _read_all(_service(handler), "hello", ["aW1n"], [1, 2])

        (request,) = seen
        body = json.loads(request.content)
        check.equal(request.method, "POST")
        check.equal(str(request.url), "http://ollama.test/api/generate")
        check.equal(body["model"], "llama3.1:8b")
        check.equal(body["prompt"], "hello")
        check.is_true(body["stream"])
        check.equal(body["images"], ["aW1n"])
        check.equal(body["context"], [1, 2])
        check.equal(body["options"], {"temperature": 0.7})

    async def test_first_turn_omits_images_and_context(self) -> None:
        """Empty images and a missing context are left out of the body."""
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=b"")

        await _read_all(_service(handler), "hello")

        check.is_not_in("images", bodies[0])
        check.is_not_in("context", bodies[0])

    async def test_format_hint_appended(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, content=b"")

        await _read_all(_service(handler, format_instructions=True), "hello")

        assert bodies[0]["prompt"] == "hello" + FORMAT_HINT

    async def test_streams_body_bytes_untouched(self) -> None:
        """Fragments are passed through without framing."""
        payload = b'{"response":"Hi","done":false}\n{"response":"!","done":true,"context":[3]}\n'

        async def body():
            yield payload[:10]
            yield payload[10:]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        assert await _read_all(_service(handler), "hello") == payload

    async def test_http_error_raises_transport_error(self) -> None:
        """Non-2xx responses surface status and body."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": "model 'nope' not found"})

        with pytest.raises(TransportError) as exc_info:
            await _read_all(_service(handler), "hello")

        check.is_in("HTTP 404", str(exc_info.value))
        check.is_in("not found", str(exc_info.value))

    async def test_connection_failure_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        with pytest.raises(TransportError, match="Connection to Ollama failed"):
            await _read_all(_service(handler), "hello")
