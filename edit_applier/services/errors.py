"""
Error taxonomy for the edit-apply workflow
"""

from __future__ import annotations


class ApplyError(Exception):
    """Base class for failures surfaced by the apply workflow"""

    category = "unknown"
    retryable = False

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthError(ApplyError):
    """Invalid or missing credential"""

    category = "auth"


class ValidationError(ApplyError):
    """Service rejected the request body"""

    category = "bad_request"


class RateLimitError(ApplyError):
    """HTTP 429 from the hosted service"""

    category = "rate_limit"
    retryable = True

    def __init__(self, message: str, status_code: int | None = 429, retry_after: float | None = None):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class TransientServerError(ApplyError):
    """5xx from the hosted service"""

    category = "server_error"
    retryable = True


class ServiceUnreachableError(TransientServerError):
    """Connection could not be established"""

    category = "connection"


class ApplyTimeoutError(ApplyError):
    category = "timeout"


class StreamInterrupted(ApplyError):
    """Stream ended before the service signalled completion; partial output is discarded"""

    category = "stream_interrupted"
    retryable = True


class TruncatedOutputError(ApplyError):
    """finish_reason reported a cut-off generation"""

    category = "truncated"


class InvalidInput(ApplyError):
    """Caller supplied an unusable original/update pair"""

    category = "invalid_input"


class StorageError(ApplyError):
    """Target could not be read or written"""

    category = "storage"


class AmbiguousEditError(ApplyError):
    """Snippet is shorter than the original and carries no truncation markers.

    Only used as an advisory warning code; never raised by the workflow.
    """

    category = "ambiguous_edit"


class MisappliedEditError(ApplyError):
    """Merge completed but the caller judged it wrong and the reapply budget is spent"""

    category = "misapplied"


def error_for_status(status: int, message: str, retry_after: float | None = None) -> ApplyError:
    """Map an upstream HTTP status to the matching error class"""
    if status in (401, 403):
        return AuthError(message, status)
    if status == 429:
        return RateLimitError(message, status, retry_after=retry_after)
    if status >= 500:
        return TransientServerError(message, status)
    return ValidationError(message, status)
