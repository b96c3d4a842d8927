"""Ollama Chat - conversational front end over a locally hosted Ollama server.

Combines httpx for streaming inference calls, pydantic for the conversation
data model, FastAPI for the history API and NiceGUI for the chat interface.

Components:
    - streaming: Newline-delimited frame decoding
    - chat: Transcript, continuation context and turn controller
    - storage: Saved session persistence
    - client: Ollama configuration and HTTP client
    - parsing: Document text extraction and image encoding
    - api: Session history endpoints
    - ui: Web interface for chat interactions
    - models: Shared pydantic models
"""

__version__ = "0.1.0"
