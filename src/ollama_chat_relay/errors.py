"""Exceptions raised by the relay, the backend gateway and the client."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class BackendError(RelayError):
    """The model-serving backend was unreachable or answered with an error status."""

    def __init__(self, message: str, status: int | None = None, details: str | None = None):
        super().__init__(message)
        self.status = status
        self.details = details or message


class RelayStateError(RelayError):
    """A single-use relay was started twice or moved through an invalid transition."""


class StreamError(RelayError):
    """An event stream ended with an explicit error event."""
