"""Exception hierarchy shared by the gateway, storage and transport layers."""

from __future__ import annotations


class TelenceError(Exception):
    """Base class for all bot errors."""


class ConfigurationError(TelenceError):
    """Raised at startup when required settings are missing or invalid."""


class ValidationError(TelenceError):
    """Raised when a user-supplied argument (count, duration) is malformed."""


class AuthenticationError(TelenceError):
    """Raised when a bearer token could not be obtained."""


class TransportError(TelenceError):
    """Raised when an outbound HTTP call fails.

    ``status`` is ``None`` for network-level failures (DNS, timeouts,
    connection resets); otherwise it holds the non-success HTTP status and
    ``body`` the captured response text.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ResponseDecodeError(TelenceError):
    """Raised when a provider response does not have the expected shape."""


class StorageError(TelenceError):
    """Raised internally by the message store; never escapes to callers."""
