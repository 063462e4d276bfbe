"""Exception taxonomy shared by every layer of the client.

WHY: The session shows exactly one user-visible error at a time and has
to decide per failure whether the user can fix it, whether it was
already retried, and whether the submission must be reset. Typed
exceptions carry that decision instead of string matching.

HOW: One base class, TranscribeClientError, with a subclass per failure
kind. Where a builtin already names the concept (ValueError,
PermissionError) the subclass also inherits from it so generic callers
can still catch the builtin.

RULES:
- ValidationError: bad input before/after encoding, user-correctable
- CapturePermissionError: capture device denied or unavailable
- DecodeError: malformed or unsupported audio, terminal for the attempt
- RateLimitError: 429 after the retry budget is spent
- ServerError: 5xx or transport failure, never auto-retried
- ProtocolError: unrecognized response shape (bug-class)
- HistoryFetchError: listing failed, the store keeps stale data
- AuthenticationError: login rejected or bearer token refused
- ConfigurationError: base URL or token missing
"""

from __future__ import annotations


class TranscribeClientError(Exception):
    """Base class for all client errors.

    ``message`` is the text shown in the session's error slot.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(TranscribeClientError, ValueError):
    """Raised when audio or request input is rejected before or by the provider."""


class CapturePermissionError(TranscribeClientError, PermissionError):
    """Raised when the microphone cannot be opened."""


class DecodeError(TranscribeClientError):
    """Raised when audio cannot be decoded to PCM."""


class RateLimitError(TranscribeClientError):
    """Raised when the provider keeps answering 429 after all attempts."""

    def __init__(self, message: str, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(message)


class ServerError(TranscribeClientError):
    """Raised on a 5xx response or a transport failure.

    ``status_code`` is None when no HTTP response was received.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProtocolError(TranscribeClientError):
    """Raised when a provider response has no recognizable shape."""


class HistoryFetchError(TranscribeClientError):
    """Raised when the history listing cannot be retrieved or parsed."""


class AuthenticationError(TranscribeClientError):
    """Raised when login fails or the provider refuses the bearer token."""


class ConfigurationError(TranscribeClientError, ValueError):
    """Raised when required configuration is missing."""
