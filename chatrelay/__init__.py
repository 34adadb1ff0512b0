"""ChatChat relay: rooms, message history and file attachments over FastAPI."""

__version__ = "2.1.0"
