"""Unit tests for individual components in isolation.

Coverage:
    - streaming/: Frame decoding and re-chunking
    - chat/: Transcript, context and the turn state machine
    - storage/: Session persistence and summaries
    - client/: Configuration and the Ollama HTTP client
    - parsing/: Document and image handling

Uses scripted fakes for the inference transport. Leverages pytest-check for
multiple assertions per test.
"""
