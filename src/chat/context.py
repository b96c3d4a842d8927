"""Continuation context carried between turns."""

from collections.abc import Sequence

from src.models.schemas import ContinuationState


class ContextManager:
    """Tracks the model context token and images carried across turns.

    Only the most recent carried image is offered to a turn that sends no
    image of its own, which keeps the request payload bounded while still
    allowing follow-up questions about the last picture.
    """

    def __init__(self) -> None:
        self._token: list[int] | None = None
        self._carried: tuple[str, ...] = ()

    @property
    def token(self) -> list[int] | None:
        return list(self._token) if self._token is not None else None

    @property
    def carried_attachments(self) -> list[str]:
        return list(self._carried)

    def advance(self, new_token: Sequence[int] | None, new_attachments: Sequence[str]) -> None:
        """Record the outcome of a completed turn.

        The token is replaced, not merged; attachments are appended.
        """
        token = list(new_token) if new_token is not None else None
        carried = self._carried + tuple(new_attachments)
        self._token, self._carried = token, carried

    def attachments_for_next_turn(self, explicit: Sequence[str]) -> list[str]:
        """Images to send with the next request."""
        if explicit:
            return list(explicit)
        if self._carried:
            return [self._carried[-1]]
        return []

    def reset(self) -> None:
        self._token, self._carried = None, ()

    def seed(self, state: ContinuationState) -> None:
        """Restore state from a saved session."""
        token = list(state.token) if state.token is not None else None
        self._token, self._carried = token, tuple(state.carried_attachments)

    def snapshot(self) -> ContinuationState:
        return ContinuationState(token=self.token, carried_attachments=self.carried_attachments)
