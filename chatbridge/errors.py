"""
Error taxonomy for chatbridge.

Every error raised by the adapter layer derives from ChatBridgeError so
callers can catch the whole family in one place. Nothing here is retried.
"""

from typing import Optional


class ChatBridgeError(Exception):
    """Base class for all chatbridge errors."""
    pass


class UnsupportedBackendError(ChatBridgeError):
    """Model is tagged with a backend no adapter is registered for."""
    pass


class NoBodyError(ChatBridgeError):
    """Transport returned no body where a stream was required."""
    pass


class MalformedRecordError(ChatBridgeError):
    """A stream segment could not be parsed as the expected JSON shape."""

    def __init__(self, message: str, record: Optional[str] = None):
        super().__init__(message)
        self.record = record


class BackendReportedError(ChatBridgeError):
    """
    Error payload sent by the backend itself.

    The message is passed through verbatim so the UI can show exactly
    what the server said.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransportError(ChatBridgeError):
    """Underlying network failure (connect, read, timeout)."""
    pass


class MissingConfigurationError(ChatBridgeError):
    """A required endpoint or credential is not configured."""
    pass
