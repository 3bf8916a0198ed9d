"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the identity and chat apps. No chat
logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - UUIDModel: BaseModel with UUID primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError / NotFoundError / PermissionDeniedError: permanent failures
    - TransientError / StorageUnavailableError / OperationTimeoutError: retryable failures
    - api_exception_handler: DRF exception handler

Decorators (import from core.decorators):
    - retry_transient: Exponential backoff for TransientError
    - translate_db_errors: Connection errors -> StorageUnavailableError
    - call_with_timeout: Deadline for latent calls

Protocols (import from core.protocols):
    - CacheBackend, IdentityProvider, BlobStore

Note:
    Models are NOT imported here to avoid AppRegistryNotReady errors.
    Import them directly from core.models.
"""

from .exceptions import (
    BaseApplicationError,
    ConcurrentCreateConflictError,
    ExternalServiceError,
    NotFoundError,
    OperationTimeoutError,
    PermissionDeniedError,
    StorageUnavailableError,
    TransientError,
    ValidationError,
)
from .services import BaseService, ServiceResult
from .protocols import BlobStore, CacheBackend, IdentityProvider
from .decorators import call_with_timeout, retry_transient, translate_db_errors

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConcurrentCreateConflictError",
    "ExternalServiceError",
    "TransientError",
    "StorageUnavailableError",
    "OperationTimeoutError",
    # Protocols
    "CacheBackend",
    "IdentityProvider",
    "BlobStore",
    # Decorators
    "retry_transient",
    "translate_db_errors",
    "call_with_timeout",
]
