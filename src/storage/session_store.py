"""Session store: keyed persistence of complete conversations.

The whole collection is serialized as one JSON blob under a single namespace
key. Every operation reads the blob, so a list() right after an upsert()
always reflects it.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from src.client.config import get_client_config
from src.models.schemas import DEFAULT_TITLE, Role, Session, SessionSummary, utc_now
from src.storage.backends import FileBackend, KeyValueBackend

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "ollama_chat_history"

PREVIEW_LENGTH = 60
TITLE_LENGTH = 40
ELLIPSIS = "..."
EMPTY_PREVIEW = "Empty chat"

_sessions_adapter = TypeAdapter(list[Session])


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def derive_title(session: Session) -> str:
    """Title from the first user message, or DEFAULT_TITLE."""
    for message in session.messages:
        if message.role is Role.USER:
            text = " ".join(message.text.split())
            if text:
                return _truncate(text, TITLE_LENGTH)
            break
    return DEFAULT_TITLE


def derive_preview(session: Session) -> str:
    """Excerpt of the second-to-last message (the last complete reply)."""
    if len(session.messages) < 2:
        return EMPTY_PREVIEW
    return _truncate(session.messages[-2].text, PREVIEW_LENGTH)


def summarize(session: Session) -> SessionSummary:
    return SessionSummary(
        id=session.id,
        title=session.title,
        preview=derive_preview(session),
        created_at=session.created_at,
    )


class SessionStore:
    """Durable mapping from session id to Session."""

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Callable[[], datetime] = utc_now,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._namespace = namespace
        self._lock = threading.Lock()

    def _load(self) -> list[Session]:
        raw = self._backend.read(self._namespace)
        if not raw:
            return []
        try:
            return _sessions_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable session history '{self._namespace}': {e}")
            return []

    def _save(self, sessions: list[Session]) -> None:
        self._backend.write(self._namespace, _sessions_adapter.dump_json(sessions))

    def upsert(self, session: Session) -> Session:
        """Insert or fully overwrite a session by id.

        ``updated_at`` is set to the current time and ``created_at`` is kept
        from the first insert.

        Returns:
            The session as stored.
        """
        with self._lock:
            sessions = self._load()
            stored = session.model_copy(deep=True)
            stored.updated_at = self._clock()

            for index, existing in enumerate(sessions):
                if existing.id == session.id:
                    stored.created_at = existing.created_at
                    sessions[index] = stored
                    break
            else:
                sessions.append(stored)

            self._save(sessions)

        logger.info(f"Saved session {stored.id} ({len(stored.messages)} messages)")
        return stored.model_copy(deep=True)

    def get(self, session_id: str) -> Session | None:
        """Return the session, or None if no session has that id."""
        for session in self._load():
            if session.id == session_id:
                return session
        return None

    def delete(self, session_id: str) -> None:
        """Remove a session. Unknown ids are ignored."""
        with self._lock:
            sessions = self._load()
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return
            self._save(remaining)
        logger.info(f"Deleted session {session_id}")

    def list(self) -> list[SessionSummary]:
        """Summaries ordered by creation time, newest first (ties by id)."""
        sessions = sorted(self._load(), key=lambda s: s.id)
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return [summarize(s) for s in sessions]


# Module-level singleton instance
_session_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Get or create the global file-backed session store.

    Returns:
        The SessionStore instance rooted at the configured storage directory.
    """
    global _session_store
    if _session_store is None:
        config = get_client_config()
        _session_store = SessionStore(FileBackend(config.storage_dir))
        logger.info(f"Session history stored in {config.storage_dir}")
    return _session_store
