"""Pydantic models shared by the chat core, the API and the UI.

Models:
    - Message: Individual transcript entry
    - ContinuationState: Context token and carried images
    - Session: Saved conversation
    - SessionSummary: History listing projection
    - StreamRecord: One decoded frame of the generate stream
    - GenerateRequest: Outgoing request body for the inference service
    - DocumentContent: Text extracted from an uploaded document
"""

from src.models.schemas import (
    DEFAULT_TITLE,
    ContinuationState,
    DocumentContent,
    GenerateRequest,
    Message,
    Role,
    Session,
    SessionSummary,
    StreamRecord,
    TurnState,
    utc_now,
)

__all__ = [
    "DEFAULT_TITLE",
    "ContinuationState",
    "DocumentContent",
    "GenerateRequest",
    "Message",
    "Role",
    "Session",
    "SessionSummary",
    "StreamRecord",
    "TurnState",
    "utc_now",
]
