"""NiceGUI interface - thin presentation layer over the session controller.

Responsibilities:
    - Transcript display with streaming updates
    - Image and document attachment uploads
    - Saving, loading and deleting chats from the history drawer

Contains no conversation state of its own; everything it renders comes from
the controller.
"""
