"""
Base service layer patterns for business logic encapsulation.

This module provides foundational patterns for the service layer:
- ServiceResult: Standard result wrapper for consistent success/failure handling
- BaseService: Base class with common service utilities

Pattern Comparison:
    - ServiceResult: Use for expected failures (validation, not found,
      not a participant). These are permanent and never retried.
    - Exceptions: Use for unexpected or transient failures (storage
      unavailable, timeouts). See core.exceptions.

Usage:
    from core.services import BaseService, ServiceResult

    class ChatService(BaseService):
        @classmethod
        def rename(cls, chat, name: str) -> ServiceResult[Conversation]:
            if not name.strip():
                return ServiceResult.failure("Name is required", "INVALID_ARGUMENT")

            with cls.atomic():
                chat.name = name.strip()
                chat.save(update_fields=["name", "updated_at"])

            cls.get_logger().info(f"Renamed chat {chat.id}")
            return ServiceResult.success(chat)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

from core.exceptions import (
    BaseApplicationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")

# error_code -> exception raised by ServiceResult.unwrap()
_FAILURE_EXCEPTIONS: dict[str, type[BaseApplicationError]] = {
    ValidationError.default_error_code: ValidationError,
    NotFoundError.default_error_code: NotFoundError,
    PermissionDeniedError.default_error_code: PermissionDeniedError,
}


@dataclass
class ServiceResult(Generic[T]):
    """
    Standard result wrapper for service operations.

    Attributes:
        success: Whether the operation succeeded
        data: Result data if successful (None if failed)
        error: Error message if failed (None if successful)
        error_code: Machine-readable error code for client handling
        errors: Field-level errors for validation failures

    Usage:
        result = MessageService.send_message(chat.id, user.id, "Ann", text="hi")
        if result.success:
            message = result.data
        else:
            print(f"Error: {result.error} ({result.error_code})")
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        """
        Create a successful result.

        The classmethod shadows the field on the class only; instances
        still carry the boolean set by __init__.
        """
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """
        Create a failed result.

        Args:
            error: Human-readable error message
            error_code: Machine-readable error code for client handling
            errors: Field-level errors (for validation failures)
        """
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    def to_response(self) -> dict[str, Any]:
        """Convert to API response format."""
        if self.success:
            return {"success": True, "data": self.data}

        response: dict[str, Any] = {
            "success": False,
            "error": self.error,
        }
        if self.error_code:
            response["error_code"] = self.error_code
        if self.errors:
            response["errors"] = self.errors
        return response

    def unwrap(self) -> T:
        """
        Return the data or raise the exception matching the error code.

        Example:
            chat = ConversationService.resolve_chat([a.id, b.id]).unwrap()
        """
        if self.success:
            return self.data  # type: ignore[return-value]
        exc_class = _FAILURE_EXCEPTIONS.get(self.error_code or "", BaseApplicationError)
        raise exc_class(
            self.error or "Operation failed",
            error_code=self.error_code,
            details={"errors": self.errors} if self.errors else None,
        )

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for service layer classes.

    Design Notes:
        - Use @classmethod (no instance state)
        - Use ServiceResult for expected failures
        - Raise exceptions for unexpected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Thin wrapper around Django's transaction.atomic() that makes
        transaction boundaries explicit in service code.
        """
        with transaction.atomic():
            yield

    @classmethod
    def invalid(cls, message: str, field_name: str | None = None) -> ServiceResult:
        """Shortcut for an INVALID_ARGUMENT failure."""
        errors = {field_name: [message]} if field_name else None
        return ServiceResult.failure(
            message,
            error_code=ValidationError.default_error_code,
            errors=errors,
        )

    @classmethod
    def not_found(cls, message: str) -> ServiceResult:
        return ServiceResult.failure(message, error_code=NotFoundError.default_error_code)

    @classmethod
    def not_participant(cls, message: str = "You are not a participant in this chat") -> ServiceResult:
        return ServiceResult.failure(
            message,
            error_code=PermissionDeniedError.default_error_code,
        )
