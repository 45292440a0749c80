"""
Domain Error Taxonomy

Every failure the order pipeline can report is one of these types.
The API maps them to HTTP status codes; the kitchen display maps them
back from status codes, so both sides agree on what is retryable.

    ValidationError    -> 400  caller's fault, never retried
    Unauthorized       -> 403  credential/ownership mismatch, never retried
    NotFound           -> 404  entity does not exist
    InvalidTransition  -> 409  stale state, retry after refetching
    TransientIO        -> 500  store/network unavailable, retried by polling

Author: Khalil Bannouri
Version: 1.0.0
"""

from typing import Optional


class TablesideError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "Internal Server Error"
    retryable: bool = False

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.error
        super().__init__(self.detail)


class ValidationError(TablesideError):
    """Malformed or incomplete input."""
    status_code = 400
    error = "Validation Error"


class Unauthorized(TablesideError):
    """Caller may not see or act on the entity."""
    status_code = 403
    error = "Unauthorized"


class NotFound(TablesideError):
    """Entity does not exist."""
    status_code = 404
    error = "Not Found"


class InvalidTransition(TablesideError):
    """Requested status change is not legal from the current status."""
    status_code = 409
    error = "Invalid Transition"

    def __init__(self, current: str, requested: str, detail: Optional[str] = None):
        self.current = current
        self.requested = requested
        super().__init__(
            detail or f"Cannot move order from '{current}' to '{requested}'"
        )


class TransientIO(TablesideError):
    """Network or store unavailable."""
    status_code = 500
    error = "Service Unavailable"
    retryable = True


_BY_STATUS = {
    400: ValidationError,
    403: Unauthorized,
    404: NotFound,
}


def error_for_status(status_code: int, detail: Optional[str] = None) -> TablesideError:
    """
    Rebuild a typed error from an HTTP status code.

    409 responses lose the current/requested pair on the wire, so the
    rebuilt InvalidTransition carries "unknown" for both and keeps the
    server's message as its detail.
    """
    if status_code == 409:
        return InvalidTransition("unknown", "unknown", detail=detail)
    if status_code == 401:
        return Unauthorized(detail or "Authentication required")
    error_cls = _BY_STATUS.get(status_code)
    if error_cls is not None:
        return error_cls(detail)
    if status_code == 422:
        return ValidationError(detail)
    if status_code >= 500:
        return TransientIO(detail or f"Server returned {status_code}")
    return TablesideError(detail or f"Unexpected status {status_code}")
