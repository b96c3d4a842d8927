"""Conversation state for the chat front end.

Responsibilities:
    - Transcript reconciliation for streamed assistant replies
    - Continuation context and carried image attachments
    - Turn orchestration (see src.chat.controller)

The controller is not re-exported here; import it from src.chat.controller.
"""

from src.chat.context import ContextManager
from src.chat.errors import (
    ChatError,
    ConflictingStream,
    DecodeError,
    EmptyTurn,
    InvalidTransition,
    NoActiveTarget,
    NothingToSave,
    PrematureTermination,
    TransportError,
    TurnInProgress,
)
from src.chat.transcript import TranscriptReconciler

__all__ = [
    "ChatError",
    "ConflictingStream",
    "ContextManager",
    "DecodeError",
    "EmptyTurn",
    "InvalidTransition",
    "NoActiveTarget",
    "NothingToSave",
    "PrematureTermination",
    "TranscriptReconciler",
    "TransportError",
    "TurnInProgress",
]
