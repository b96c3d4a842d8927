"""Integration tests for components working together as a system.

Coverage:
    - Session history API with real HTTP requests
    - Full chat turns through OllamaService and a file-backed store

The Ollama server is replaced by httpx.MockTransport streaming NDJSON.
"""
