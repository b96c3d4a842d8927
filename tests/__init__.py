"""Test package for Ollama Chat.

Structure:
    - unit/: Individual function and class tests
    - integration/: Components wired together through real HTTP layers
    - fakes.py: Scripted transport, frame builders and a fake clock

No live Ollama server is needed; inference traffic is replayed in-process.
Leverages pytest with pytest-check for soft assertions.
"""
