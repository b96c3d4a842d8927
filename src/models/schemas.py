from datetime import UTC, datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, Field, StrictBool, model_validator

DEFAULT_TITLE = "New chat"


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class Role(str, Enum):
    """Speaker of a transcript entry."""

    USER = "user"
    ASSISTANT = "assistant"


class TurnState(str, Enum):
    """Lifecycle of a single turn as seen by the controller."""

    IDLE = "idle"
    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    STREAMING = "streaming"


class Message(BaseModel):
    """One transcript entry.

    Attributes:
        id: Unique within a session, never reused.
        role: Who produced the message.
        text: Message body. Grows while the message is the open stream target.
        attachments: Base64-encoded images sent with the message.
    """

    id: str
    role: Role
    text: str = ""
    attachments: list[str] = Field(default_factory=list)


class ContinuationState(BaseModel):
    """Model state carried from one turn to the next.

    Attributes:
        token: Opaque context returned by the inference service (None before
            the first completed turn).
        carried_attachments: Images available to turns that send none.
    """

    token: list[int] | None = None
    carried_attachments: list[str] = Field(default_factory=list)


class Session(BaseModel):
    """A saved conversation.

    Attributes:
        id: Stable identifier, reused on every save.
        title: Human-readable title derived on first save.
        messages: Transcript in conversation order.
        created_at: Time of the first save (or creation of the working copy).
        updated_at: Time of the last save.
        continuation: Continuation state snapshot.
    """

    id: str
    title: str = DEFAULT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    continuation: ContinuationState = Field(default_factory=ContinuationState)


class SessionSummary(BaseModel):
    """Listing projection of a Session, recomputed on every read."""

    id: str
    title: str
    preview: str
    created_at: datetime


class StreamRecord(BaseModel):
    """One decoded frame of the streaming generate endpoint.

    Ollama sends ``response`` and ``context``; the generic frame names
    ``text-fragment`` and ``token`` are accepted as well. Every frame carries
    the text and a boolean ``done`` unless it is an ``error`` frame.

    Attributes:
        text_fragment: Text produced since the previous frame.
        done: Whether this is the final frame of the response.
        token: Continuation context, only present on the final frame.
        error: Error reported by the service instead of content.
    """

    text_fragment: str = Field(
        default="",
        validation_alias=AliasChoices("response", "text-fragment", "text_fragment"),
    )
    done: StrictBool = False
    token: list[int] | None = Field(
        default=None,
        validation_alias=AliasChoices("context", "token"),
    )
    error: str | None = None

    @model_validator(mode="after")
    def require_content_fields(self) -> "StreamRecord":
        """Reject frames that are neither content nor an error report."""
        if self.error is None:
            missing = {"text_fragment", "done"} - self.model_fields_set
            if missing:
                raise ValueError(f"Frame is missing {', '.join(sorted(missing))}")
        return self


class GenerateRequest(BaseModel):
    """Request body for Ollama's ``POST /api/generate``."""

    model: str
    prompt: str
    stream: bool = True
    options: dict[str, float] = Field(default_factory=dict)
    images: list[str] | None = None
    context: list[int] | None = None


class DocumentContent(BaseModel):
    """Extracted content from an uploaded document.

    Attributes:
        name: Original filename.
        text: Combined text content from all pages.
        pages: Total number of pages (1 for plain text).
        metadata: Document metadata (title, author, etc.).
    """

    name: str
    text: str
    pages: int = Field(ge=0)
    metadata: dict[str, str] = Field(default_factory=dict)
