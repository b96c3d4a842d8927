"""Error taxonomy for the chat core.

Per-frame decode problems are absorbed by the decoder, turn-level failures
are reported once through the controller's failure event, and caller
invariant violations are raised as hard faults.
"""


class ChatError(Exception):
    """Base class for all chat core errors."""


class DecodeError(ChatError):
    """A single frame could not be decoded. Logged, never raised to callers."""

    def __init__(self, message: str, frame: bytes) -> None:
        super().__init__(message)
        self.frame = frame


class PrematureTermination(ChatError):
    """The stream ended before a frame with ``done=true`` arrived."""


class TransportError(ChatError):
    """The request could not be sent or the connection dropped."""


class ConflictingStream(ChatError):
    """A message was opened while another one is still streaming."""


class NoActiveTarget(ChatError):
    """A fragment arrived for a message that is not the open stream target."""


class TurnInProgress(ChatError):
    """An operation requiring an idle controller was issued mid-turn."""


class EmptyTurn(ChatError):
    """A turn was submitted with no text and no attachments."""


class NothingToSave(ChatError):
    """The active session has no user message yet."""


class InvalidTransition(ChatError):
    """The turn state machine was asked to make an illegal transition."""
