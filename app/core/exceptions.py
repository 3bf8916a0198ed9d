"""
Base exception classes for application-wide error handling.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Malformed or empty input (INVALID_ARGUMENT)
    ├── NotFoundError - Referenced record is absent (NOT_FOUND)
    ├── PermissionDeniedError - Caller may not act on the resource (NOT_PARTICIPANT)
    └── ExternalServiceError - Store, cache, channel layer or blob failures
        └── TransientError - Safe to retry with backoff
            ├── StorageUnavailableError - Backing store unreachable
            ├── OperationTimeoutError - Call exceeded its deadline
            └── ConcurrentCreateConflictError - Unique pair raced on insert

Permanent errors (validation, not found, permission) are normally returned
as ServiceResult failures by the service layer. The exceptions here are
raised for transient infrastructure failures and for callers that prefer
exceptions (see ServiceResult.unwrap).

Usage:
    from core.exceptions import StorageUnavailableError

    try:
        chat = client.resolve_chat([alice.id, bob.id]).unwrap()
    except StorageUnavailableError:
        # retried already, tell the user to try again
        ...
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any

    from rest_framework.response import Response

logger = logging.getLogger(__name__)


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (field errors, ids, etc.)
        http_status: Status code used when rendered by the API
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Chat not found",
                "error_code": "NOT_FOUND",
                "details": {"chat_id": "..."}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Raised when input is malformed or empty. Never retried."""

    default_error_code: str = "INVALID_ARGUMENT"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """Raised when a referenced chat, message or user does not exist."""

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """Raised when the acting user is not a participant of the chat."""

    default_error_code: str = "NOT_PARTICIPANT"
    http_status: int = 403


class ExternalServiceError(BaseApplicationError):
    """
    Raised when a backing service call fails.

    Log the original error for debugging but don't expose internal
    details to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502


class TransientError(ExternalServiceError):
    """Failure that may succeed if the same call is repeated later."""

    default_error_code: str = "TRANSIENT_ERROR"
    http_status: int = 503


class StorageUnavailableError(TransientError):
    """The database, cache or channel layer could not be reached."""

    default_error_code: str = "STORAGE_UNAVAILABLE"


class OperationTimeoutError(TransientError):
    """A latent call did not complete within its deadline."""

    default_error_code: str = "TIMEOUT"
    http_status: int = 504


class ConcurrentCreateConflictError(TransientError):
    """
    A concurrent writer created the same unique record first.

    The chat directory resolves this by repeating the lookup. It is only
    raised if the winning row still cannot be read after several attempts,
    in which case the facade retry treats it like any transient failure.
    """

    default_error_code: str = "CONCURRENT_CREATE_CONFLICT"


def api_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    DRF exception handler that also renders BaseApplicationError.

    Registered as REST_FRAMEWORK["EXCEPTION_HANDLER"]. Falls back to the
    stock DRF handler for everything else.
    """
    from rest_framework.response import Response
    from rest_framework.views import exception_handler

    if isinstance(exc, BaseApplicationError):
        if isinstance(exc, TransientError):
            logger.warning(f"Transient failure in {context.get('view')}: {exc}")
        return Response(exc.to_dict(), status=exc.http_status)
    return exception_handler(exc, context)
