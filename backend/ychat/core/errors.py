# backend/ychat/core/errors.py

from __future__ import annotations


class ChatError(Exception):
    """
    Base class for failures the gateway turns into a per-connection event.

    `message` is safe to send to the client; internal detail belongs in the
    exception chain and the logs.
    """

    default_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """Missing or malformed client input (blank username, empty message...)."""

    default_message = "Invalid request"


class PersistenceError(ChatError):
    """Message store unreachable or a write failed."""

    default_message = "Message store unavailable"


class NotFoundError(ChatError):
    """Unknown (or already expired) message or blob id."""

    default_message = "Not found"


class AccessDeniedError(ChatError):
    """Join rejected by the room access policy."""

    default_message = "Access denied"
