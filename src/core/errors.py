"""Exception taxonomy for title resolution and record acquisition.

Sources raise these errors and the retry executor classifies them to
decide what gets retried. The orchestrator catches them at the per-source
boundary. A missing match is never an exception: resolvers return None and
the orchestrator returns an unsuccessful AcquisitionResult.
"""

from __future__ import annotations

__all__ = [
    "RateLimitedError",
    "ResolverError",
    "SourceUnavailableError",
    "StorageError",
    "TransientSourceError",
    "ValidationError",
]


class ResolverError(Exception):
    """Base class for all errors raised by the resolver package.

    Attributes:
        code: Short machine-readable error code.
        recoverable: Whether retrying the same request later may succeed.
        user_message: Message suitable for showing to an end user.
    """

    code = "RESOLVER_ERROR"
    recoverable = False
    default_user_message = "Something went wrong while looking up completion times."

    def __init__(self, message: str, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class ValidationError(ResolverError):
    """Malformed name or identifier, rejected before any I/O."""

    code = "VALIDATION_ERROR"
    default_user_message = "The game name is not valid."


class RateLimitedError(ResolverError):
    """A source explicitly throttled the request.

    Args:
        message: Error message.
        retry_after: Seconds the source asked us to wait, if it said so.
    """

    code = "RATE_LIMITED"
    recoverable = True
    default_user_message = "Too many requests. Please wait a moment."

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class TransientSourceError(ResolverError):
    """Network failure, timeout or server-side error worth retrying.

    Args:
        message: Error message.
        status_code: HTTP status code, or None for connection-level failures.
    """

    code = "TRANSIENT_SOURCE_ERROR"
    recoverable = True
    default_user_message = "Connection problem. Please try again."

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SourceUnavailableError(ResolverError):
    """The source cannot serve this request; move on to the next one."""

    code = "SOURCE_UNAVAILABLE"
    default_user_message = "The data source is currently unavailable."


class StorageError(ResolverError):
    """Reading or writing persisted state failed."""

    code = "STORAGE_ERROR"
    recoverable = True
    default_user_message = "Failed to save data."
