"""Persistence for saved conversations.

Components:
    - backends: Key-value blob storage (file and in-memory)
    - session_store: Session upsert/get/delete/list with derived summaries
"""

from src.storage.backends import FileBackend, KeyValueBackend, MemoryBackend
from src.storage.session_store import (
    SessionStore,
    derive_preview,
    derive_title,
    get_session_store,
)

__all__ = [
    "FileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "SessionStore",
    "derive_preview",
    "derive_title",
    "get_session_store",
]
