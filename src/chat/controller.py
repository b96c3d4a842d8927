"""Session controller: runs chat turns and owns the working conversation.

A turn moves through ``idle -> awaiting_first_byte -> streaming -> idle``.
The only exit that changes continuation state is a frame with
``done=true``; every other ending (transport failure, service error frame,
stream cut short, cancellation) aborts the assistant placeholder and leaves
the context as it was before the turn.

The byte-stream read loop is the only suspension point. Each decoded record
is applied to the transcript synchronously, so arrival order is preserved
without locking.
"""

import asyncio
import logging
import uuid
from collections.abc import AsyncGenerator, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from src.chat.context import ContextManager
from src.chat.errors import (
    EmptyTurn,
    InvalidTransition,
    NothingToSave,
    PrematureTermination,
    TransportError,
    TurnInProgress,
)
from src.chat.transcript import TranscriptReconciler
from src.models.schemas import (
    DocumentContent,
    Message,
    Role,
    Session,
    SessionSummary,
    TurnState,
    utc_now,
)
from src.storage.session_store import SessionStore, derive_title
from src.streaming.decoder import decode_stream

logger = logging.getLogger(__name__)

MAX_DOCUMENT_CHARS = 20_000

_TRANSITIONS: dict[TurnState, list[TurnState]] = {
    TurnState.IDLE: [TurnState.AWAITING_FIRST_BYTE],
    TurnState.AWAITING_FIRST_BYTE: [TurnState.STREAMING, TurnState.IDLE],
    TurnState.STREAMING: [TurnState.IDLE],
}


class InferenceTransport(Protocol):
    """Sends one turn and returns the raw response body as it arrives."""

    def send_turn(
        self,
        prompt: str,
        images: Sequence[str] = (),
        context: Sequence[int] | None = None,
    ) -> AsyncGenerator[bytes]: ...


def _ignore(*args: object) -> None:
    return None


@dataclass
class ChatEventHandlers:
    """Callbacks for presentation layers. All default to no-ops."""

    on_message_appended: Callable[[Message], None] = _ignore
    on_message_updated: Callable[[str, str], None] = _ignore
    on_turn_failed: Callable[[str], None] = _ignore
    on_turn_completed: Callable[[Message], None] = _ignore


def new_message_id() -> str:
    return uuid.uuid4().hex


def compose_prompt(text: str, documents: Sequence[DocumentContent] = ()) -> str:
    """Build the prompt for a turn, prefixing any attached document text."""
    if not documents:
        return text

    parts = ["Use the following documents as context when answering."]
    for document in documents:
        body = document.text[:MAX_DOCUMENT_CHARS]
        parts.append(f"--- {document.name} ---\n{body}")
    parts.append(f"Question: {text}" if text else "Summarize the documents above.")
    return "\n\n".join(parts)


class SessionController:
    """Orchestrates turns for one active conversation.

    Args:
        transport: Inference transport (usually an OllamaService).
        store: Session store used for save, load, delete and listing.
        clock: Timestamp source.
        handlers: Event callbacks for the presentation layer.
    """

    def __init__(
        self,
        transport: InferenceTransport,
        store: SessionStore,
        clock: Callable[[], datetime] = utc_now,
        handlers: ChatEventHandlers | None = None,
    ) -> None:
        self._transport = transport
        self._store = store
        self._clock = clock
        self.handlers = handlers or ChatEventHandlers()

        self._context = ContextManager()
        self._state = TurnState.IDLE
        self._turn_task: asyncio.Task[bool] | None = None
        self._reply_id: str | None = None

        self._start_fresh()

    # --- read side -------------------------------------------------------

    @property
    def turn_state(self) -> TurnState:
        return self._state

    @property
    def session(self) -> Session:
        """Snapshot of the working session."""
        return self._meta.model_copy(
            update={
                "messages": self._transcript.messages,
                "continuation": self._context.snapshot(),
            },
            deep=True,
        )

    @property
    def context(self) -> ContextManager:
        return self._context

    @property
    def is_dirty(self) -> bool:
        """Whether the working session has changes that were not saved."""
        return self._dirty

    @property
    def is_persisted(self) -> bool:
        return self._persisted

    def transcript(self) -> list[Message]:
        return self._transcript.messages

    def session_summaries(self) -> list[SessionSummary]:
        return self._store.list()

    # --- turns -----------------------------------------------------------

    def begin_turn(
        self,
        text: str,
        attachments: Sequence[str] | None = None,
        documents: Sequence[DocumentContent] | None = None,
    ) -> asyncio.Task[bool]:
        """Validate and start a turn, returning the task that streams it.

        All validation happens before any side effect.

        Raises:
            TurnInProgress: If another turn is in flight.
            EmptyTurn: If there is no text, image or document to send.
        """
        text = text.strip()
        images = list(attachments or ())
        docs = list(documents or ())

        if self._state is not TurnState.IDLE:
            raise TurnInProgress(f"Cannot submit while turn is {self._state.value}")
        if not text and not images and not docs:
            raise EmptyTurn("Nothing to send: message text and attachments are empty")

        if not self._persisted and not self._transcript.messages:
            now = self._clock()
            self._meta.created_at = now
            self._meta.updated_at = now

        user_message = Message(id=new_message_id(), role=Role.USER, text=text, attachments=images)
        self._transcript.add(user_message)
        self._dirty = True
        self._emit("on_message_appended", user_message)

        request_images = self._context.attachments_for_next_turn(images)

        reply_id = new_message_id()
        placeholder = self._transcript.open(reply_id)
        self._reply_id = reply_id
        self._transition(TurnState.AWAITING_FIRST_BYTE)
        self._emit("on_message_appended", placeholder)

        logger.info(
            f"Starting turn {reply_id} ({len(request_images)} images, {len(docs)} documents)"
        )
        task = asyncio.create_task(
            self._run_turn(
                reply_id,
                compose_prompt(text, docs),
                request_images,
                images,
                self._context.token,
            )
        )
        task.add_done_callback(self._on_task_done)
        self._turn_task = task
        return task

    async def submit(
        self,
        text: str,
        attachments: Sequence[str] | None = None,
        documents: Sequence[DocumentContent] | None = None,
    ) -> bool:
        """Send a turn and wait for it to finish.

        Returns:
            True if the reply completed, False if the turn failed or was
            cancelled through cancel_turn().

        Raises:
            TurnInProgress: If another turn is in flight.
            EmptyTurn: If there is no text, image or document to send.
        """
        task = self.begin_turn(text, attachments, documents)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return False

    async def cancel_turn(self) -> bool:
        """Cancel the in-flight turn and release its HTTP response.

        Returns:
            True if a turn was cancelled, False if none was running.
        """
        task = self._turn_task
        if task is None or task.done():
            return False

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        self._fail_turn("Turn cancelled")
        return True

    async def _run_turn(
        self,
        reply_id: str,
        prompt: str,
        request_images: list[str],
        new_images: list[str],
        token: list[int] | None,
    ) -> bool:
        try:
            chunks = self._transport.send_turn(prompt, request_images, token)
            async with aclosing(chunks), aclosing(decode_stream(chunks)) as records:
                async for record in records:
                    if self._state is TurnState.AWAITING_FIRST_BYTE:
                        self._transition(TurnState.STREAMING)
                    if record.error:
                        raise TransportError(f"Ollama reported an error: {record.error}")
                    if record.text_fragment:
                        updated = self._transcript.append(reply_id, record.text_fragment)
                        self._emit("on_message_updated", reply_id, updated.text)
                    if record.done:
                        self._complete_turn(reply_id, record.token, new_images)
                        return True
            raise PrematureTermination("Stream closed before the final frame")
        except (TransportError, PrematureTermination) as e:
            self._fail_turn(str(e))
            return False
        except asyncio.CancelledError:
            self._fail_turn("Turn cancelled")
            raise
        except Exception as e:
            self._fail_turn(f"Unexpected error: {e}")
            raise

    def _on_task_done(self, task: asyncio.Task[bool]) -> None:
        # Runs a loop step after the task finished; a newer turn may own the
        # controller by then and must be left alone.
        if self._turn_task is not task:
            return
        self._turn_task = None
        # A task cancelled before its first step never reaches _run_turn's handlers.
        if self._reply_id is not None:
            self._fail_turn("Turn cancelled")

    def _complete_turn(
        self,
        reply_id: str,
        token: list[int] | None,
        new_images: list[str],
    ) -> None:
        new_token = token if token is not None else self._context.token
        self._context.advance(new_token, new_images)
        self._transcript.close(reply_id)
        self._reply_id = None
        self._transition(TurnState.IDLE)

        reply = self._transcript.get(reply_id)
        logger.info(f"Turn {reply_id} completed ({len(reply.text) if reply else 0} chars)")
        if reply is not None:
            self._emit("on_turn_completed", reply)

    def _fail_turn(self, reason: str) -> None:
        reply_id = self._reply_id
        if reply_id is None:
            return
        self._reply_id = None
        self._transcript.abort(reply_id)
        self._transition(TurnState.IDLE)
        logger.warning(f"Turn {reply_id} failed: {reason}")
        self._emit("on_turn_failed", reason)

    def _transition(self, target: TurnState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise InvalidTransition(f"Invalid transition: {self._state.value} -> {target.value}")
        self._state = target

    def _emit(self, event: str, *args: object) -> None:
        handler = getattr(self.handlers, event)
        try:
            handler(*args)
        except Exception:
            logger.exception(f"Event handler {event} raised")

    # --- sessions --------------------------------------------------------

    def _start_fresh(self) -> None:
        now = self._clock()
        self._meta = Session(id=uuid.uuid4().hex, created_at=now, updated_at=now)
        self._transcript = TranscriptReconciler()
        self._context.reset()
        self._persisted = False
        self._dirty = False

    def _require_idle(self, action: str) -> None:
        if self._state is not TurnState.IDLE:
            raise TurnInProgress(f"Cannot {action} while turn is {self._state.value}")

    def save_active(self) -> Session:
        """Persist the working session.

        The title is derived on the first save; later saves reuse the id and
        title.

        Raises:
            NothingToSave: If there is no user message yet.
            TurnInProgress: If a turn is in flight.
        """
        self._require_idle("save")
        session = self.session
        if not any(m.role is Role.USER for m in session.messages):
            raise NothingToSave("Send a message before saving the chat")

        if not self._persisted:
            session.title = derive_title(session)

        stored = self._store.upsert(session)
        self._meta = stored.model_copy(update={"messages": []}, deep=True)
        self._persisted = True
        self._dirty = False
        return stored

    def load_session(self, session_id: str) -> Session | None:
        """Replace the working session with a stored one.

        Returns:
            The loaded session, or None if the id is unknown (nothing changes).

        Raises:
            TurnInProgress: If a turn is in flight.
        """
        self._require_idle("load a session")
        stored = self._store.get(session_id)
        if stored is None:
            logger.warning(f"Session {session_id} not found")
            return None

        self._meta = stored.model_copy(update={"messages": []}, deep=True)
        self._transcript = TranscriptReconciler(stored.messages)
        self._context.reset()
        self._context.seed(stored.continuation)
        self._persisted = True
        self._dirty = False
        logger.info(f"Loaded session {session_id} ({len(stored.messages)} messages)")
        return self.session

    async def reset_active(self) -> None:
        """Discard the working session (cancelling any turn) and start fresh."""
        await self.cancel_turn()
        self._start_fresh()
        logger.info("Started a new conversation")

    async def delete_session(self, session_id: str) -> None:
        """Delete a stored session, resetting if it is the active one."""
        self._store.delete(session_id)
        if session_id == self._meta.id:
            await self.reset_active()
