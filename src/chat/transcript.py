"""Transcript reconciler: applies user input and stream events to the message list."""

import logging

from src.chat.errors import ConflictingStream, NoActiveTarget
from src.models.schemas import Message, Role

logger = logging.getLogger(__name__)


class TranscriptReconciler:
    """Owns the ordered message list of one conversation.

    At most one assistant message is open (receiving streamed text) at a
    time. Messages are appended in the order their originating action
    happened and are never reordered or deduplicated.
    """

    def __init__(self, messages: list[Message] | None = None) -> None:
        self._messages: list[Message] = [m.model_copy(deep=True) for m in messages or []]
        self._open_id: str | None = None

    @property
    def open_id(self) -> str | None:
        return self._open_id

    @property
    def messages(self) -> list[Message]:
        """Snapshot of the transcript, safe to hand to renderers."""
        return [m.model_copy(deep=True) for m in self._messages]

    def get(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message.model_copy(deep=True)
        return None

    def add(self, message: Message) -> None:
        """Append a complete message (typically the user's)."""
        if self._open_id is not None:
            raise ConflictingStream(
                f"Cannot add message {message.id} while {self._open_id} is streaming"
            )
        self._messages.append(message.model_copy(deep=True))

    def open(self, message_id: str) -> Message:
        """Insert an empty assistant placeholder and make it the stream target.

        Raises:
            ConflictingStream: If another message is still open.
        """
        if self._open_id is not None:
            raise ConflictingStream(
                f"Cannot open {message_id}: message {self._open_id} is still streaming"
            )
        placeholder = Message(id=message_id, role=Role.ASSISTANT, text="")
        self._messages.append(placeholder)
        self._open_id = message_id
        return placeholder.model_copy()

    def append(self, message_id: str, fragment: str) -> Message:
        """Concatenate a fragment onto the open message.

        Returns:
            Snapshot of the updated message.

        Raises:
            NoActiveTarget: If ``message_id`` is not the open message.
        """
        if message_id != self._open_id:
            raise NoActiveTarget(
                f"Message {message_id} is not the active stream target "
                f"(open: {self._open_id})"
            )
        target = self._messages[-1]
        target.text += fragment
        return target.model_copy()

    def close(self, message_id: str) -> None:
        """Finish streaming into ``message_id``, keeping its text."""
        if message_id != self._open_id:
            raise NoActiveTarget(f"Message {message_id} is not open")
        self._open_id = None

    def abort(self, message_id: str) -> bool:
        """Abandon streaming into ``message_id``.

        An empty placeholder is removed; partial text is kept. Aborting a
        message that is not open does nothing.

        Returns:
            True if the abort was applied, False if it was a no-op.
        """
        if message_id != self._open_id:
            logger.debug(f"Ignoring abort for {message_id}: not the open message")
            return False

        self._open_id = None
        target = self._messages[-1]
        if not target.text:
            self._messages.pop()
        return True
