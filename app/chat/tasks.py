"""
Celery tasks for chat app.

This module defines async tasks for:
- Reconciling a conversation's derived fields (summary, unread counters)
- Periodic reconciliation of recently active conversations
- Announcing typing entries whose TTL has lapsed

Related files:
    - services.py: ReadTrackingService.reconcile
    - presence.py: TypingTracker schedules expire_typing
    - config/settings.py: CELERY_BEAT_SCHEDULE

Usage:
    from chat.tasks import reconcile_conversation

    reconcile_conversation.delay(str(conversation.id))
"""

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db import OperationalError
from django.utils import timezone

from core.exceptions import TransientError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(TransientError, OperationalError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def reconcile_conversation(self, conversation_id: str) -> dict:
    """
    Recompute one conversation's summary and unread counters.

    Args:
        conversation_id: UUID of the conversation

    Returns:
        {"summary_moved": bool, "counters_fixed": int}, or an empty dict
        if the conversation no longer exists
    """
    from chat.client import get_chat_client
    from chat.services import ReadTrackingService

    result = ReadTrackingService.reconcile(conversation_id, publisher=get_chat_client().publisher)
    if not result.success:
        logger.warning(f"Skipped reconcile for {conversation_id}: {result.error}")
        return {}
    return result.data


@shared_task
def reconcile_recent_conversations(interval_seconds: int | None = None) -> int:
    """
    Queue reconciliation for conversations active within the interval.

    Scheduled by celery beat (see CELERY_BEAT_SCHEDULE). The window is
    twice the schedule interval so a missed run is still covered. Chats
    that never had a message are skipped; their creation time also lives
    in last_message_at.

    Returns:
        Number of conversations queued
    """
    from chat.models import Conversation

    if interval_seconds is None:
        interval_seconds = settings.CHAT_RECONCILE_INTERVAL_SECONDS
    since = timezone.now() - timedelta(seconds=interval_seconds * 2)

    conversation_ids = list(
        Conversation.objects.filter(message_sequence__gt=0, last_message_at__gte=since)
        .values_list("id", flat=True)
    )
    for conversation_id in conversation_ids:
        reconcile_conversation.delay(str(conversation_id))

    logger.info(f"Queued reconcile for {len(conversation_ids)} conversations")
    return len(conversation_ids)


@shared_task(
    autoretry_for=(TransientError, OperationalError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def expire_typing(conversation_id: str, user_id) -> bool:
    """
    Publish a typing event once a user's typing entry has lapsed.

    Queued by TypingTracker with a countdown of TYPING_CONFIG.TTL_SECONDS.
    A refresh in the meantime leaves a live entry, and that refresh queues
    its own check, so this run does nothing.

    Args:
        conversation_id: UUID of the conversation
        user_id: ID of the user who was typing

    Returns:
        True if observers were notified
    """
    from chat.client import get_chat_client
    from chat.constants import SUBSCRIPTION_CONFIG
    from chat.services import participant_ids_for

    client = get_chat_client()
    if client.typing.is_typing(conversation_id, user_id):
        return False

    participant_ids = participant_ids_for(conversation_id)
    if not participant_ids:
        return False

    client.publisher.publish(conversation_id, participant_ids, SUBSCRIPTION_CONFIG.REASON_TYPING)
    logger.debug(f"Typing expired for user {user_id} in conversation {conversation_id}")
    return True
