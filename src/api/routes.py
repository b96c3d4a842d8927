"""Session history endpoints.

Read and delete access to saved conversations for history views. Saving
happens through the chat controller, which owns the working session.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from src.models.schemas import Session, SessionSummary
from src.storage.session_store import SessionStore, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("", response_model=list[SessionSummary])
async def list_sessions(
    store: SessionStore = Depends(get_session_store),
) -> list[SessionSummary]:
    """List saved sessions, newest first.

    Returns:
        SessionSummary entries with title, preview and creation time.
    """
    return store.list()


@router.get("/{session_id}", response_model=Session)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Return one saved session with its full transcript.

    Raises:
        404: No session with that id.
    """
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Session {session_id} not found",
        )
    return session


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Response:
    """Delete a saved session. Deleting an unknown id succeeds."""
    store.delete(session_id)
    logger.info(f"Session {session_id} deleted via API")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
