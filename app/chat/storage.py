"""
Blob store adapter for chat images.

StorageBlobStore writes through Django's storage API, so the backend is
whatever STORAGES["default"] configures (local disk in development, any
django-storages backend in deployment). Only the returned URL is kept on
the message.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage

from core.decorators import call_with_timeout
from core.exceptions import StorageUnavailableError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def chat_image_path(chat_id: Any, ref: Any, timestamp_ms: int | None = None) -> str:
    """
    Storage path for a chat image.

    Format: chats/<chat_id>/images/<ref>_<milliseconds>.jpg
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"chats/{chat_id}/images/{ref}_{timestamp_ms}.jpg"


class StorageBlobStore:
    """
    BlobStore over a Django storage backend.

    Args:
        storage: Storage instance, defaults to default_storage
        timeout: Upload deadline in seconds, defaults to
            settings.BLOB_UPLOAD_TIMEOUT_SECONDS
    """

    def __init__(self, storage=None, timeout: float | None = None):
        self.storage = storage or default_storage
        self.timeout = timeout if timeout is not None else getattr(settings, "BLOB_UPLOAD_TIMEOUT_SECONDS", 30)

    def upload(self, data: bytes, path: str) -> str:
        """
        Save content at path and return its URL.

        The storage may pick a different name if path is taken; the URL
        always refers to the name actually written.

        Raises:
            OperationTimeoutError: Upload exceeded the deadline
            StorageUnavailableError: Backend failed
        """
        return call_with_timeout(self._save, self.timeout, path, data)

    def _save(self, path: str, content: bytes) -> str:
        try:
            name = self.storage.save(path, ContentFile(content))
            url = self.storage.url(name)
        except OSError as e:
            logger.exception(f"Blob upload failed for {path}: {e}")
            raise StorageUnavailableError("Image storage unavailable") from e

        logger.info(f"Stored {len(content)} bytes at {name}")
        return url
