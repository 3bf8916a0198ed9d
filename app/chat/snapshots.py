"""
Snapshot builders.

A snapshot is the full current state an observer renders: the ordered
message list of one chat, or the ordered chat list of one user. Builders
are synchronous and read straight from the database; subscriptions call
them in a worker thread after every change event.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import Prefetch

from chat.models import Conversation, Message, Participant
from chat.serializers import ChatSerializer, MessageSerializer

if TYPE_CHECKING:
    from typing import Any

    from chat.presence import TypingTracker


def chat_queryset():
    """Conversations with everything ChatSerializer touches prefetched."""
    return Conversation.objects.select_related("last_message").prefetch_related(
        Prefetch(
            "participants",
            queryset=Participant.objects.select_related("user").order_by("position"),
        ),
        "last_message__receipts",
    )


def message_list_snapshot(chat_id: Any, window: int | None = None) -> list[dict]:
    """
    Ordered messages of a chat, oldest first.

    Args:
        window: Only the newest `window` messages when given
    """
    queryset = Message.objects.filter(conversation_id=chat_id).prefetch_related("receipts")
    if window:
        messages = list(queryset.order_by("-sequence")[:window])
        messages.reverse()
    else:
        messages = list(queryset.order_by("sent_at", "sequence"))
    return [dict(item) for item in MessageSerializer(messages, many=True).data]


def user_chats_snapshot(user_id: Any, typing_tracker: TypingTracker | None = None) -> list[dict]:
    """A user's chats, most recent activity first."""
    conversations = (
        chat_queryset()
        .filter(participants__user_id=user_id)
        .order_by("-last_message_at", "-created_at")
    )
    serializer = ChatSerializer(conversations, many=True, context={"typing_tracker": typing_tracker})
    return [dict(item) for item in serializer.data]


def chat_snapshot(chat_id: Any, typing_tracker: TypingTracker | None = None) -> dict | None:
    """One chat, or None if it no longer exists."""
    conversation = chat_queryset().filter(pk=chat_id).first()
    if conversation is None:
        return None
    return dict(ChatSerializer(conversation, context={"typing_tracker": typing_tracker}).data)
