"""Pytest fixtures and shared test configuration.

Provides reusable fixtures for unit and integration tests.

Fixtures:
    - fixed_clock: Deterministic clock advancing one second per call
    - memory_store: SessionStore over an in-memory backend
    - async_client: HTTPX client for API testing with the store overridden
"""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.api import app
from src.storage.backends import MemoryBackend
from src.storage.session_store import SessionStore, get_session_store
from tests.fakes import FakeClock


@pytest.fixture
def fixed_clock() -> FakeClock:
    """Return a clock starting at 2026-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def memory_store(fixed_clock: FakeClock) -> SessionStore:
    """Session store backed by memory, stamped by the fake clock."""
    return SessionStore(MemoryBackend(), clock=fixed_clock)


@pytest.fixture
async def async_client(memory_store: SessionStore) -> AsyncGenerator[AsyncClient]:
    """Create async HTTP client for API testing.

    Yields:
        Configured AsyncClient whose routes use the in-memory store.
    """
    app.dependency_overrides[get_session_store] = lambda: memory_store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
