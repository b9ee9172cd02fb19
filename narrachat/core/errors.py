# narrachat/core/errors.py
from __future__ import annotations
from typing import Optional


class ChatError(Exception):
    """Base for every failure that ends a send. `.message` is safe to show to a user."""
    reason = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(ChatError):
    """The request could not be issued, or the stream broke before completion."""
    reason = "transport"

    def __init__(self, detail: Optional[str] = None, message: str = "connection problem"):
        super().__init__(message)
        self.detail = detail


class HttpStatusError(ChatError):
    """Non-2xx status returned before any streaming began."""
    reason = "http_status"

    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"Error {status}")
        self.status = status


class CancellationError(ChatError):
    reason = "cancelled"

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


class ConversationBusyError(ChatError):
    reason = "busy"

    def __init__(self, message: str = "a response is still streaming"):
        super().__init__(message)


class AttachmentError(ChatError):
    reason = "attachment"


class FrameDecodeError(ValueError):
    """A data line carried truncated JSON. Recoverable; never leaves the stream driver."""

    def __init__(self, payload: str, cause: Exception | None = None):
        super().__init__(f"truncated frame payload ({len(payload)} chars)")
        self.payload = payload
        self.cause = cause


class SessionSealedError(RuntimeError):
    pass
