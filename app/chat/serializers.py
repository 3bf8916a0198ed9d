"""
Serializers for the chat API and snapshots.

Read serializers turn records into the plain dicts pushed to observers
and returned by the REST API. All ids are strings.

Serializer Hierarchy:
    MessageSerializer: Message with read-by set and is_read flag
    ChatSerializer: Chat with participants, unread map and typing users
    MessagePageSerializer: One page of list_messages

    ChatCreateSerializer: resolve_chat input
    MessageCreateSerializer: send_message input
    TypingSerializer: set_typing input
    ImageUploadSerializer: image upload input

Design Decisions:
    - Input serializers only check shape; business rules (lengths, empty
      content, participation) live in the services so every caller gets
      the same error codes
    - ChatSerializer reads typing users from the TypingTracker passed in
      context; without one the list is empty
"""

from __future__ import annotations

from rest_framework import serializers

from chat.constants import CHAT_CONFIG
from chat.models import Conversation, Message
from identity.serializers import UserSerializer


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Message record.

    read_by lists reader ids in read order (sender first).
    is_read is true once someone besides the sender has read it.
    """

    id = serializers.CharField(read_only=True)
    chat_id = serializers.CharField(source="conversation_id", read_only=True)
    sender_id = serializers.CharField(read_only=True, allow_null=True)
    read_by = serializers.SerializerMethodField()
    is_read = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            "id",
            "chat_id",
            "sender_id",
            "sender_name",
            "text",
            "image_url",
            "kind",
            "sent_at",
            "sequence",
            "read_by",
            "is_read",
        ]
        read_only_fields = fields

    def get_read_by(self, obj: Message) -> list[str]:
        return [str(user_id) for user_id in obj.read_by_ids()]

    def get_is_read(self, obj: Message) -> bool:
        return obj.is_read_by_others


class MessagePageSerializer(serializers.Serializer):
    """Response shape for list_messages."""

    messages = MessageSerializer(many=True, read_only=True)
    next_cursor = serializers.CharField(read_only=True, allow_null=True)
    has_more = serializers.BooleanField(read_only=True)


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatSerializer(serializers.ModelSerializer):
    """
    Chat record.

    Expects participants (with users) and last_message receipts to be
    prefetched; see chat.snapshots.chat_queryset().

    Context:
        typing_tracker: Optional TypingTracker for typing_user_ids
    """

    id = serializers.CharField(read_only=True)
    is_group = serializers.BooleanField(read_only=True)
    participant_ids = serializers.SerializerMethodField()
    last_message_summary = MessageSerializer(source="last_message", read_only=True, allow_null=True)
    unread_count = serializers.SerializerMethodField()
    typing_user_ids = serializers.SerializerMethodField()
    participants = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            "id",
            "participant_ids",
            "is_group",
            "name",
            "created_at",
            "last_message_at",
            "last_message_summary",
            "unread_count",
            "typing_user_ids",
            "participants",
        ]
        read_only_fields = fields

    def _participants(self, obj: Conversation):
        return sorted(obj.participants.all(), key=lambda p: p.position)

    def get_participant_ids(self, obj: Conversation) -> list[str]:
        return [str(p.user_id) for p in self._participants(obj)]

    def get_unread_count(self, obj: Conversation) -> dict[str, int]:
        return {str(p.user_id): p.unread_count for p in self._participants(obj)}

    def get_typing_user_ids(self, obj: Conversation) -> list[str]:
        tracker = self.context.get("typing_tracker")
        if tracker is None:
            return []
        participant_ids = [p.user_id for p in self._participants(obj)]
        return [str(user_id) for user_id in tracker.typing_user_ids(obj.pk, participant_ids)]

    def get_participants(self, obj: Conversation) -> list[dict]:
        return UserSerializer([p.user for p in self._participants(obj)], many=True).data


# =============================================================================
# Input Serializers
# =============================================================================


class ChatCreateSerializer(serializers.Serializer):
    """
    Input for resolving a chat.

    The caller is always added as the first participant and creator,
    so participant_ids may list only the other users.
    """

    participant_ids = serializers.ListField(
        child=serializers.CharField(),
        allow_empty=False,
        help_text="User ids to chat with",
    )
    is_group = serializers.BooleanField(default=False)
    name = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)


class MessageCreateSerializer(serializers.Serializer):
    """Input for sending a message. At least one of text/image_url is required."""

    text = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
    image_url = serializers.CharField(required=False, allow_blank=True, default="")


class TypingSerializer(serializers.Serializer):
    is_typing = serializers.BooleanField()


class ImageUploadSerializer(serializers.Serializer):
    """Multipart image upload."""

    image = serializers.FileField()

    def validate_image(self, value):
        content_type = getattr(value, "content_type", "") or ""
        if not content_type.startswith("image/"):
            raise serializers.ValidationError("Only image uploads are allowed.")
        if value.size > CHAT_CONFIG.MAX_IMAGE_BYTES:
            raise serializers.ValidationError("Image is too large.")
        return value
