"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Conversation management
- Participant viewing
- Message moderation
"""

from django.contrib import admin

from chat.models import Conversation, DirectConversationPair, Message, MessageReadReceipt, Participant


class ParticipantInline(admin.TabularInline):
    """Inline display of participants in conversation admin."""

    model = Participant
    extra = 0
    readonly_fields = ["position", "joined_at", "unread_count", "last_read_sequence"]
    raw_id_fields = ["user"]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "conversation_type",
        "name",
        "message_sequence",
        "created_at",
        "last_message_at",
    ]
    list_filter = ["conversation_type", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "last_message",
        "last_message_sequence",
        "last_message_at",
        "message_sequence",
    ]
    raw_id_fields = ["created_by"]
    inlines = [ParticipantInline]
    ordering = ["-created_at"]


@admin.register(DirectConversationPair)
class DirectConversationPairAdmin(admin.ModelAdmin):
    """Admin interface for DirectConversationPair model."""

    list_display = ["conversation", "user_lower", "user_higher"]
    raw_id_fields = ["conversation", "user_lower", "user_higher"]


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    list_display = ["id", "conversation", "user", "position", "unread_count", "joined_at"]
    search_fields = ["user__email", "conversation__name"]
    readonly_fields = ["created_at", "updated_at", "joined_at"]
    raw_id_fields = ["conversation", "user"]
    ordering = ["-joined_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sender_name",
        "kind",
        "text_preview",
        "sequence",
        "sent_at",
    ]
    list_filter = ["kind", "sent_at"]
    search_fields = ["text", "sender__email", "sender_name"]
    readonly_fields = ["created_at", "updated_at", "sent_at", "sequence"]
    raw_id_fields = ["conversation", "sender"]
    ordering = ["-sent_at"]

    @admin.display(description="Text Preview")
    def text_preview(self, obj: Message) -> str:
        """Return truncated text for list display."""
        max_length = 50
        if len(obj.text) > max_length:
            return obj.text[:max_length] + "..."
        return obj.text


@admin.register(MessageReadReceipt)
class MessageReadReceiptAdmin(admin.ModelAdmin):
    list_display = ["message", "user", "read_at"]
    raw_id_fields = ["message", "user"]
