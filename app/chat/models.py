"""
Chat system models.

This module defines the data models for the chat synchronization core:
- Direct (1:1) conversations between exactly two users
- Group conversations with a name and two or more participants

Models:
    Conversation: Container for messages, carries the denormalized last-message summary
    DirectConversationPair: Enforces at most one direct conversation per user pair
    Participant: Membership with per-user unread counter
    Message: Immutable message with a per-conversation sequence number
    MessageReadReceipt: One row per (message, reader), the message's read-by set

Design Decisions:
    - Messages are totally ordered within a conversation by (sent_at, sequence);
      sent_at never goes backwards so both orders agree
    - last_message/last_message_at/unread_count are derived fields, updated in the
      same transaction as the message and recomputable by chat.tasks.reconcile_conversation
    - Read-by is a receipts table so "union into set" is an insert-ignore
    - Typing state lives in the cache, not here (see chat.presence)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.models import BaseModel, UUIDModel


class ConversationType(models.TextChoices):
    """
    Type of conversation.

    DIRECT: Exactly two participants, unique per pair, no name
    GROUP: Named, two or more participants, always newly created
    """

    DIRECT = "direct", "Direct Message"
    GROUP = "group", "Group"


class MessageKind(models.TextChoices):
    """Content kind. IMAGE when the message carries an image URL."""

    TEXT = "text", "Text"
    IMAGE = "image", "Image"


class Conversation(UUIDModel):
    """
    A conversation between two or more users.

    Fields:
        conversation_type: direct or group
        name: Group name (empty for direct)
        created_by: User who created the conversation
        last_message: Most recent message (denormalized summary)
        last_message_sequence: Sequence of last_message, 0 when none
        last_message_at: Time of most recent message, creation time until then
        message_sequence: Allocation counter for Message.sequence

    Relationships:
        participants: Participant rows in insertion order
        messages: All Message records
        direct_pair: DirectConversationPair if type is DIRECT
    """

    conversation_type = models.CharField(
        max_length=10,
        choices=ConversationType.choices,
        default=ConversationType.DIRECT,
        db_index=True,
        help_text="Type of conversation (direct or group)",
    )

    name = models.CharField(
        max_length=50,
        blank=True,
        default="",
        help_text="Name for group conversations (empty for direct)",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_conversations",
        help_text="User who created this conversation",
    )

    last_message = models.ForeignKey(
        "chat.Message",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Most recent message (derived)",
    )

    last_message_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Sequence of last_message; guards out-of-order summary updates",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting conversation lists)",
    )

    message_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Last allocated message sequence number",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]
        indexes = [
            models.Index(
                fields=["-last_message_at", "-created_at"],
                name="chat_conv_last_msg_idx",
            ),
        ]

    def __str__(self) -> str:
        if self.is_group:
            return f"Group: {self.name}"
        return f"Direct({self.pk})"

    @property
    def is_direct(self) -> bool:
        return self.conversation_type == ConversationType.DIRECT

    @property
    def is_group(self) -> bool:
        return self.conversation_type == ConversationType.GROUP

    def participant_ids(self) -> list[int]:
        """User ids in insertion order."""
        return list(
            self.participants.order_by("position").values_list("user_id", flat=True)
        )


class DirectConversationPair(models.Model):
    """
    Enforces uniqueness of direct conversations between two users.

    Stores the pair in canonical order (lower user id first). The unique
    constraint is what makes concurrent "find or create" for the same pair
    safe: the losing insert fails and the caller repeats the lookup.

    Constraints:
        - UniqueConstraint(user_lower, user_higher): One conversation per pair
        - CheckConstraint(user_lower_id < user_higher_id): Canonical order
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct conversation this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this conversation pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this conversation pair",
    )

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_conversation_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"

    @staticmethod
    def canonical(user_a_id: int, user_b_id: int) -> tuple[int, int]:
        """Return (lower, higher) for a pair of user ids."""
        return (user_a_id, user_b_id) if user_a_id < user_b_id else (user_b_id, user_a_id)


class Participant(BaseModel):
    """
    A user's membership in a conversation.

    Fields:
        conversation: Conversation this participation belongs to
        user: Participating user
        position: Insertion order within the conversation
        unread_count: Messages from others since this user's last mark_read
        last_read_sequence: Conversation sequence at the last mark_read
        joined_at: When the user was added
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Conversation this participation belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversation_participations",
        help_text="User participating in the conversation",
    )

    position = models.PositiveSmallIntegerField(
        default=0,
        help_text="Order in which the participant was added",
    )

    unread_count = models.PositiveIntegerField(
        default=0,
        help_text="Unread messages for this user (derived)",
    )

    last_read_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Conversation message_sequence when the user last marked it read",
    )

    joined_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user joined this conversation",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["position"]
        indexes = [
            models.Index(
                fields=["user", "conversation"],
                name="chat_part_user_conv_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_participation",
            ),
        ]

    def __str__(self) -> str:
        return f"Participant: {self.user_id} in {self.conversation_id} (unread={self.unread_count})"


class Message(UUIDModel):
    """
    A message within a conversation.

    Messages are immutable after creation; only read receipts are added.

    Fields:
        conversation: Conversation this message belongs to
        sender: Sending user
        sender_name: Sender display name captured at send time
        text: Trimmed text, may be empty for image messages
        image_url: Uploaded image URL, may be empty for text messages
        kind: text or image
        sent_at: Never earlier than the previous message in the conversation
        sequence: Per-conversation insertion order, tie-break for sent_at

    Relationships:
        receipts: MessageReadReceipt rows (the read-by set)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message",
    )

    sender_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Sender display name at send time (denormalized)",
    )

    text = models.TextField(
        blank=True,
        default="",
        help_text="Message text (max 1000 characters)",
    )

    image_url = models.URLField(
        max_length=500,
        blank=True,
        default="",
        help_text="Image URL for image messages",
    )

    kind = models.CharField(
        max_length=10,
        choices=MessageKind.choices,
        default=MessageKind.TEXT,
        help_text="Type of message content",
    )

    sent_at = models.DateTimeField(
        help_text="Send time, monotonic within the conversation",
    )

    sequence = models.PositiveBigIntegerField(
        help_text="Per-conversation insertion sequence",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["sent_at", "sequence"]
        indexes = [
            models.Index(
                fields=["conversation", "sent_at", "sequence"],
                name="chat_msg_conv_order_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "sequence"],
                name="unique_message_sequence",
            ),
        ]

    def __str__(self) -> str:
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        if self.kind == MessageKind.IMAGE and not preview:
            preview = "[image]"
        return f"{self.sender_name or self.sender_id}: {preview}"

    @property
    def is_image(self) -> bool:
        return self.kind == MessageKind.IMAGE

    def read_by_ids(self) -> list[int]:
        """Reader user ids. Uses prefetched receipts when available."""
        return [receipt.user_id for receipt in self.receipts.all()]

    @property
    def is_read_by_others(self) -> bool:
        """True once someone besides the sender has read the message."""
        return len(self.read_by_ids()) > 1


class MessageReadReceipt(models.Model):
    """
    One reader of one message.

    The set of receipts for a message is its read-by set. Rows are only
    ever inserted (with conflicts ignored), so the set only grows.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="receipts",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="read_receipts",
    )

    read_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "chat_message_read_receipt"
        ordering = ["read_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_read_receipt",
            ),
        ]

    def __str__(self) -> str:
        return f"Read({self.message_id} by {self.user_id})"
