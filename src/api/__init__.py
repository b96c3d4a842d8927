"""FastAPI endpoints for the chat front end.

Endpoints:
    - GET /health: Service health status
    - GET /sessions: Saved session summaries, newest first
    - GET /sessions/{id}: One saved session
    - DELETE /sessions/{id}: Remove a saved session
"""

from src.api.app import app, create_app

__all__ = ["app", "create_app"]
