"""
Typing presence tracking.

Typing state is ephemeral and lives only in the cache:
    typing:<chat_id>:<user_id> -> expires_at (aware datetime)

Entries are written with a cache timeout of TYPING_CONFIG.TTL_SECONDS and
readers additionally ignore entries whose expires_at has passed, so a
stale entry is never reported even on backends with coarse expiry.

The cache does not announce expiry, so every start or refresh also queues
chat.tasks.expire_typing for when the TTL lapses. Observers then get a
snapshot without the user even if nothing else happens in the chat.

Usage:
    tracker = TypingTracker()
    tracker.set_typing(chat.id, user.id, True)
    tracker.typing_user_ids(chat.id, chat.participant_ids())
    describe_typing(["Ann", "Bob"])  # "Ann and Bob are typing..."
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from django.core.cache import cache as default_cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils import timezone
from kombu.exceptions import OperationalError as BrokerError

from chat.constants import SUBSCRIPTION_CONFIG, TYPING_CONFIG
from chat.models import Participant
from chat.subscriptions import ChatEventPublisher
from core.exceptions import StorageUnavailableError
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any

    from core.protocols import CacheBackend

logger = logging.getLogger(__name__)


def typing_key(chat_id: Any, user_id: Any) -> str:
    """Build cache key for one user's typing state in one chat."""
    return f"{TYPING_CONFIG.KEY_PREFIX}:{chat_id}:{user_id}"


def describe_typing(names: list[str]) -> str:
    """
    Render the typing line shown under a chat.

    Returns an empty string when nobody is typing.
    """
    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} is typing..."
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing..."
    return f"{len(names)} people are typing..."


class TypingTracker(BaseService):
    """
    Cache-backed typing state.

    Args:
        cache: CacheBackend, defaults to Django's default cache
        publisher: ChatEventPublisher used to announce typing changes
    """

    def __init__(self, cache: CacheBackend | None = None, publisher: ChatEventPublisher | None = None):
        self.cache = cache if cache is not None else default_cache
        self.publisher = publisher or ChatEventPublisher()

    def set_typing(self, chat_id: Any, user_id: Any, is_typing: bool) -> ServiceResult[None]:
        """
        Start/refresh (is_typing=True) or clear typing state.

        Error codes:
            NOT_PARTICIPANT: User is not in the chat (or the chat doesn't exist)

        Raises:
            StorageUnavailableError: Cache unreachable
        """
        participant_ids = self._participant_ids(chat_id)
        if not any(str(pid) == str(user_id) for pid in participant_ids):
            return self.not_participant()

        key = typing_key(chat_id, user_id)
        try:
            if is_typing:
                expires_at = timezone.now() + timedelta(seconds=TYPING_CONFIG.TTL_SECONDS)
                self.cache.set(key, expires_at, timeout=TYPING_CONFIG.TTL_SECONDS)
            else:
                self.cache.delete(key)
        except Exception as e:
            logger.exception(f"Error setting typing for user {user_id} in chat {chat_id}: {e}")
            raise StorageUnavailableError("Typing state unavailable") from e

        self.publisher.publish_on_commit(chat_id, participant_ids, SUBSCRIPTION_CONFIG.REASON_TYPING)
        if is_typing:
            self._schedule_expiry(chat_id, user_id)
        return ServiceResult.success(None)

    def clear(self, chat_id: Any, user_id: Any) -> None:
        """
        Drop a user's typing state without announcing it.

        Called after a message is sent; the message event already makes
        observers re-read typing state. Cache failures are logged only,
        since the entry expires on its own within the TTL.
        """
        try:
            self.cache.delete(typing_key(chat_id, user_id))
        except Exception as e:
            logger.warning(f"Could not clear typing for user {user_id} in chat {chat_id}: {e}")

    def is_typing(self, chat_id: Any, user_id: Any) -> bool:
        """
        Whether the user has an unexpired typing entry in the chat.

        Raises:
            StorageUnavailableError: Cache unreachable
        """
        try:
            expires_at = self.cache.get(typing_key(chat_id, user_id))
        except Exception as e:
            logger.exception(f"Error reading typing state for user {user_id} in chat {chat_id}: {e}")
            raise StorageUnavailableError("Typing state unavailable") from e
        return bool(expires_at) and expires_at > timezone.now()

    def typing_user_ids(self, chat_id: Any, participant_ids: Iterable[Any]) -> list[Any]:
        """
        Users with an unexpired typing entry, in participant order.

        Raises:
            StorageUnavailableError: Cache unreachable
        """
        participant_ids = list(participant_ids)
        keys = {typing_key(chat_id, user_id): user_id for user_id in participant_ids}
        try:
            entries = self.cache.get_many(list(keys))
        except Exception as e:
            logger.exception(f"Error reading typing state for chat {chat_id}: {e}")
            raise StorageUnavailableError("Typing state unavailable") from e

        now = timezone.now()
        typing = {keys[key] for key, expires_at in entries.items() if expires_at and expires_at > now}
        return [user_id for user_id in participant_ids if user_id in typing]

    @staticmethod
    def _schedule_expiry(chat_id: Any, user_id: Any) -> None:
        """Queue the check that announces the entry once its TTL lapses."""
        from chat.tasks import expire_typing

        try:
            expire_typing.apply_async(args=[str(chat_id), user_id], countdown=TYPING_CONFIG.TTL_SECONDS)
        except BrokerError as e:
            logger.warning(f"Could not queue typing expiry for user {user_id} in chat {chat_id}: {e}")

    @staticmethod
    def _participant_ids(chat_id: Any) -> list[int]:
        try:
            return list(
                Participant.objects.filter(conversation_id=chat_id)
                .order_by("position")
                .values_list("user_id", flat=True)
            )
        except (ValueError, TypeError, DjangoValidationError):
            return []
