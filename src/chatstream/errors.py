"""Exceptions raised by the streaming pipeline."""

from typing import Optional


class ChatstreamError(RuntimeError):
    """Base class for all Chatstream errors."""


class TransportError(ChatstreamError):
    """Raised when a chat completion request is rejected or cannot be sent."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StreamTimeout(ChatstreamError):
    """Raised when no chunk arrives within the configured stream timeout."""


class IndexOutOfRange(ChatstreamError, IndexError):
    """Raised when a transcript position does not exist.

    This signals a caller error. The transcript is left untouched.
    """
