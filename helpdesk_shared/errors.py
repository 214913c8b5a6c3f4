"""
Shared error handling for the helpdesk portal.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PortalException(Exception):
    """Base exception for the helpdesk portal."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidTTL(PortalException):
    """A cache write was attempted with a zero, negative or missing lifetime."""

    def __init__(self, ttl: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            "INVALID_TTL",
            f"TTL must be provided and greater than 0 (got {ttl!r})",
            {"ttl": repr(ttl), **(details or {})}
        )
        self.ttl = ttl


class TransportFailure(PortalException):
    """Every request attempt failed at the transport level (network error or timeout)."""

    def __init__(self, url: str, last_exception: BaseException, attempts: int):
        super().__init__(
            "TRANSPORT_FAILURE",
            f"Request to {url} failed after {attempts} attempts: {last_exception!r}",
            {"url": url, "attempts": attempts, "error": str(last_exception)}
        )
        self.url = url
        self.last_exception = last_exception
        self.attempts = attempts


class ApplicationError(PortalException):
    """The ticketing API answered with a non-2xx status."""

    def __init__(self, reason: str, message: str, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        payload = dict(details or {})
        if status is not None:
            payload["status"] = status
        super().__init__(f"API_{reason}", message, payload)
        self.status = status


class AuthenticationError(ApplicationError):
    """Missing or rejected credentials."""

    def __init__(self, message: str = "Authentication failed", reason: str = "AUTH_FAILED",
                 status: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(reason, message, status, details)


class StorageUnavailable(PortalException):
    """Persistent-tier read/write failure. Never surfaced past a storage backend."""

    def __init__(self, operation: str, key: Optional[str] = None, error: Optional[str] = None):
        super().__init__(
            "STORAGE_UNAVAILABLE",
            f"Storage {operation} failed",
            {"operation": operation, "key": key, "error": error}
        )
        self.operation = operation


class ValidationError(PortalException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)
