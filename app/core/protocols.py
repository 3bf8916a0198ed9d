"""
Protocol definitions for the infrastructure the chat core depends on.

Protocols define contracts that adapters must fulfill, enabling:
- Duck typing with static type checking
- Dependency injection into ChatClient and TypingTracker
- Easy fakes in tests

Available Protocols:
    CacheBackend: Key/value store with TTL (typing state)
    IdentityProvider: User directory and presence flags
    BlobStore: Binary upload returning a URL (chat images)

Usage:
    from core.protocols import BlobStore

    class MemoryBlobStore:
        def __init__(self):
            self.files = {}

        def upload(self, data, path):
            self.files[path] = data
            return f"memory://{path}"

    store: BlobStore = MemoryBlobStore()

Note:
    - Protocols are primarily for type checking
    - @runtime_checkable allows isinstance() checks
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any

    from core.services import ServiceResult


@runtime_checkable
class CacheBackend(Protocol):
    """
    Protocol for cache backends.

    Compatible with Django's cache interface (django.core.cache.cache).
    """

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value or default if missing/expired."""
        ...

    def get_many(self, keys: list[str]) -> dict[str, Any]:
        """Return a dict of the keys that exist."""
        ...

    def set(self, key: str, value: Any, timeout: int | float | None = None) -> None:
        """Store value, expiring after timeout seconds."""
        ...

    def delete(self, key: str) -> Any:
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    """
    Protocol for the user directory.

    The default implementation is identity.services.IdentityService.
    """

    def get_user(self, user_id: Any) -> ServiceResult:
        ...

    def get_users(self, user_ids: list[Any]) -> dict[Any, Any]:
        """Bulk lookup keyed by id; unknown ids are absent."""
        ...

    def list_users(self, exclude_user_id: Any = None) -> ServiceResult:
        ...

    def set_online(self, user_id: Any, is_online: bool) -> ServiceResult:
        ...


@runtime_checkable
class BlobStore(Protocol):
    """
    Protocol for binary storage.

    upload() must return a URL that can be embedded in a message.
    """

    def upload(self, data: bytes, path: str) -> str:
        ...
