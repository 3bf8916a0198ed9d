"""
Chat system service layer.

This module provides the business logic for the chat synchronization core.

Services:
    ConversationService: Resolve (find or create) direct and group chats
    MessageService: Append and page through messages
    ReadTrackingService: Read receipts, unread counters and their reconciliation

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure() with a chat.constants.ErrorCode
    - Connectivity failures propagate as exceptions and are retried by chat.client
    - Counters and set unions are single UPDATE/INSERT statements, never
      read-modify-write of whole rows
    - Changes are announced to observers only after the transaction commits

Usage:
    from chat.services import ConversationService, MessageService, ReadTrackingService

    chat = ConversationService.resolve_chat([ann.id, bob.id]).data
    MessageService.send_message(chat.id, ann.id, "Ann", text="hi")
    ReadTrackingService.mark_read(chat.id, bob.id)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from chat.constants import CHAT_CONFIG, MESSAGE_CONFIG, SUBSCRIPTION_CONFIG, ErrorCode
from chat.models import (
    Conversation,
    ConversationType,
    DirectConversationPair,
    Message,
    MessageKind,
    MessageReadReceipt,
    Participant,
)
from chat.pagination import MessageCursor, MessagePage
from chat.subscriptions import ChatEventPublisher
from core.exceptions import ConcurrentCreateConflictError
from core.services import BaseService, ServiceResult
from identity.services import IdentityService

if TYPE_CHECKING:
    from typing import Any

    from chat.presence import TypingTracker
    from core.protocols import IdentityProvider

logger = logging.getLogger(__name__)


def get_conversation(chat_id: Any) -> Conversation | None:
    """Fetch a conversation by id; None if absent or the id is malformed."""
    try:
        return Conversation.objects.get(pk=chat_id)
    except (Conversation.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        return None


def participant_ids_for(chat_id: Any) -> list[int]:
    """User ids of a conversation's participants in insertion order."""
    return list(
        Participant.objects.filter(conversation_id=chat_id)
        .order_by("position")
        .values_list("user_id", flat=True)
    )


def is_participant(chat_id: Any, user_id: Any) -> bool:
    try:
        return Participant.objects.filter(conversation_id=chat_id, user_id=user_id).exists()
    except (DjangoValidationError, ValueError, TypeError):
        return False


def _normalize_user_ids(user_ids: list[Any]) -> list[int] | None:
    """
    Convert ids to ints, dropping duplicates but keeping first-seen order.

    Returns None if any id is not an integer.
    """
    seen: list[int] = []
    for raw in user_ids:
        try:
            user_id = int(raw)
        except (TypeError, ValueError):
            return None
        if user_id not in seen:
            seen.append(user_id)
    return seen


class ConversationService(BaseService):
    """
    Service for the chat directory.

    Methods:
        resolve_chat: Find or create a direct chat, or create a group chat
    """

    @classmethod
    def resolve_chat(
        cls,
        participant_ids: list[Any],
        is_group: bool = False,
        name: str | None = None,
        created_by: Any = None,
        publisher: ChatEventPublisher | None = None,
        identity: IdentityProvider | None = None,
    ) -> ServiceResult[Conversation]:
        """
        Resolve a chat for a set of participants.

        Direct (is_group=False):
            Exactly two distinct users. Returns the existing chat for the
            pair or creates it. Never creates two chats for one pair, even
            when called concurrently. A supplied name is ignored.

        Group (is_group=True):
            Always creates a new chat. name is required (trimmed, 1-50
            characters) and at least one participant besides the creator.

        The creator is created_by when given (moved to the front of the
        participant list), else the first participant id.

        Error codes:
            INVALID_ARGUMENT: Bad participant count or name
            NOT_FOUND: A participant id does not match an active user
        """
        publisher = publisher or ChatEventPublisher()

        ids = _normalize_user_ids(list(participant_ids or []))
        if ids is None:
            return cls.not_found("Unknown participant id")

        if created_by is not None:
            try:
                creator_id = int(created_by)
            except (TypeError, ValueError):
                return cls.not_found(f"User {created_by} not found")
            ids = [creator_id] + [user_id for user_id in ids if user_id != creator_id]

        if not ids:
            return cls.invalid("At least one participant is required", "participant_ids")

        users = (identity or IdentityService).get_users(ids)
        missing = [user_id for user_id in ids if user_id not in users]
        if missing:
            return cls.not_found(f"User {missing[0]} not found")

        if is_group:
            return cls._create_group(ids, name, publisher)
        return cls._resolve_direct(ids, publisher)

    @classmethod
    def _create_group(
        cls,
        ids: list[int],
        name: str | None,
        publisher: ChatEventPublisher,
    ) -> ServiceResult[Conversation]:
        name = (name or "").strip()
        if not name:
            return cls.invalid("Group name is required", "name")
        if len(name) > CHAT_CONFIG.MAX_GROUP_NAME_LENGTH:
            return cls.invalid(
                f"Group name cannot exceed {CHAT_CONFIG.MAX_GROUP_NAME_LENGTH} characters",
                "name",
            )
        if len(ids) < 2:
            return cls.invalid(
                "A group needs at least one participant besides the creator",
                "participant_ids",
            )

        with cls.atomic():
            conversation = Conversation.objects.create(
                conversation_type=ConversationType.GROUP,
                name=name,
                created_by_id=ids[0],
                last_message_at=timezone.now(),
            )
            cls._add_participants(conversation, ids)
            publisher.publish_on_commit(conversation.pk, ids, SUBSCRIPTION_CONFIG.REASON_CREATED)

        cls.get_logger().info(
            f"Created group conversation {conversation.id} "
            f"named '{name}' with {len(ids)} participants"
        )
        return ServiceResult.success(conversation)

    @classmethod
    def _resolve_direct(
        cls,
        ids: list[int],
        publisher: ChatEventPublisher,
    ) -> ServiceResult[Conversation]:
        if len(ids) != CHAT_CONFIG.DIRECT_PARTICIPANT_COUNT:
            return cls.invalid(
                "A direct chat needs exactly two distinct participants",
                "participant_ids",
            )

        user_lower, user_higher = DirectConversationPair.canonical(ids[0], ids[1])

        for attempt in range(1, CHAT_CONFIG.MAX_RESOLVE_ATTEMPTS + 1):
            existing = (
                DirectConversationPair.objects.select_related("conversation")
                .filter(user_lower_id=user_lower, user_higher_id=user_higher)
                .first()
            )
            if existing is not None:
                cls.get_logger().debug(
                    f"Found existing direct conversation {existing.conversation_id} "
                    f"between users {user_lower} and {user_higher}"
                )
                return ServiceResult.success(existing.conversation)

            try:
                with transaction.atomic():
                    conversation = Conversation.objects.create(
                        conversation_type=ConversationType.DIRECT,
                        name="",
                        created_by_id=ids[0],
                        last_message_at=timezone.now(),
                    )
                    DirectConversationPair.objects.create(
                        conversation=conversation,
                        user_lower_id=user_lower,
                        user_higher_id=user_higher,
                    )
                    cls._add_participants(conversation, ids)
            except IntegrityError:
                # Another request created the pair first; its row is now visible
                cls.get_logger().warning(
                    f"Concurrent direct chat creation for users {user_lower} and "
                    f"{user_higher} (attempt {attempt}), repeating lookup"
                )
                continue

            publisher.publish_on_commit(conversation.pk, ids, SUBSCRIPTION_CONFIG.REASON_CREATED)
            cls.get_logger().info(
                f"Created direct conversation {conversation.id} "
                f"between users {user_lower} and {user_higher}"
            )
            return ServiceResult.success(conversation)

        raise ConcurrentCreateConflictError(
            "Direct chat could not be resolved",
            details={"user_lower": user_lower, "user_higher": user_higher},
        )

    @staticmethod
    def _add_participants(conversation: Conversation, ids: list[int]) -> None:
        Participant.objects.bulk_create(
            [
                Participant(conversation=conversation, user_id=user_id, position=position)
                for position, user_id in enumerate(ids)
            ]
        )


class MessageService(BaseService):
    """
    Service for the message log.

    Methods:
        send_message: Append a message and apply its side effects atomically
        list_messages: Page backward through a chat's messages
        apply_summary: Point the chat's last-message summary at a message
    """

    @classmethod
    def send_message(
        cls,
        chat_id: Any,
        sender_id: Any,
        sender_name: str | None = None,
        text: str | None = None,
        image_url: str | None = None,
        typing_tracker: TypingTracker | None = None,
        publisher: ChatEventPublisher | None = None,
        identity: IdentityProvider | None = None,
    ) -> ServiceResult[Message]:
        """
        Send a message to a chat.

        In one transaction: allocate the next sequence (locking the chat
        row for the rest of the transaction), persist the message with the
        sender as its first reader, bump every other participant's unread
        counter and move the chat summary forward. Then clear the sender's
        typing state and, after commit, notify observers.

        sent_at is max(now, chat.last_message_at) so time never runs
        backwards inside a chat.

        Error codes:
            NOT_FOUND: Chat does not exist
            INVALID_ARGUMENT: No text and no image, or text too long
            NOT_PARTICIPANT: Sender is not in the chat
        """
        publisher = publisher or ChatEventPublisher()

        conversation = get_conversation(chat_id)
        if conversation is None:
            return cls.not_found(f"Chat {chat_id} not found")

        text = (text or "").strip()
        image_url = (image_url or "").strip()
        if not text and not image_url:
            return cls.invalid("A message needs text or an image", "text")
        if len(text) > MESSAGE_CONFIG.MAX_TEXT_LENGTH:
            return cls.invalid(
                f"Message text cannot exceed {MESSAGE_CONFIG.MAX_TEXT_LENGTH} characters",
                "text",
            )

        if not is_participant(conversation.pk, sender_id):
            return cls.not_participant()

        sender_name = (sender_name or "").strip()
        if not sender_name:
            sender = (identity or IdentityService).get_user(sender_id)
            sender_name = sender.data.get_short_name() if sender.success else ""

        with cls.atomic():
            Conversation.objects.filter(pk=conversation.pk).update(
                message_sequence=F("message_sequence") + 1
            )
            current = Conversation.objects.only("message_sequence", "last_message_at").get(
                pk=conversation.pk
            )

            now = timezone.now()
            sent_at = max(now, current.last_message_at) if current.last_message_at else now

            message = Message.objects.create(
                conversation_id=conversation.pk,
                sender_id=sender_id,
                sender_name=sender_name,
                text=text,
                image_url=image_url,
                kind=MessageKind.IMAGE if image_url else MessageKind.TEXT,
                sent_at=sent_at,
                sequence=current.message_sequence,
            )
            MessageReadReceipt.objects.create(message=message, user_id=sender_id)

            Participant.objects.filter(conversation_id=conversation.pk).exclude(
                user_id=sender_id
            ).update(unread_count=F("unread_count") + 1)

            cls.apply_summary(conversation.pk, message)

            participant_ids = participant_ids_for(conversation.pk)
            publisher.publish_on_commit(
                conversation.pk, participant_ids, SUBSCRIPTION_CONFIG.REASON_MESSAGE
            )

        if typing_tracker is None:
            from chat.presence import TypingTracker

            typing_tracker = TypingTracker(publisher=publisher)
        typing_tracker.clear(conversation.pk, sender_id)

        cls.get_logger().debug(
            f"User {sender_id} sent message {message.id} (seq {message.sequence}) "
            f"to conversation {conversation.id}"
        )
        return ServiceResult.success(message)

    @classmethod
    def apply_summary(cls, chat_id: Any, message: Message) -> bool:
        """
        Move the chat's last-message summary to message if it is newer.

        Conditional on the stored sequence, so applying the same message
        twice, or an older one late, changes nothing. Returns True if the
        summary moved.
        """
        updated = Conversation.objects.filter(
            pk=chat_id,
            last_message_sequence__lt=message.sequence,
        ).update(
            last_message=message,
            last_message_sequence=message.sequence,
            last_message_at=message.sent_at,
            updated_at=timezone.now(),
        )
        return bool(updated)

    @classmethod
    def list_messages(
        cls,
        chat_id: Any,
        page_size: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
    ) -> ServiceResult[MessagePage]:
        """
        Return one page of messages, oldest first.

        The first page holds the newest page_size messages. next_cursor
        fetches the page before it; None means there are no older messages.

        Error codes:
            NOT_FOUND: Chat does not exist
            INVALID_ARGUMENT: page_size out of range or malformed cursor
        """
        conversation = get_conversation(chat_id)
        if conversation is None:
            return cls.not_found(f"Chat {chat_id} not found")

        try:
            page_size = int(page_size)
        except (TypeError, ValueError):
            return cls.invalid("page_size must be an integer", "page_size")
        if not 1 <= page_size <= MESSAGE_CONFIG.MAX_PAGE_SIZE:
            return cls.invalid(
                f"page_size must be between 1 and {MESSAGE_CONFIG.MAX_PAGE_SIZE}",
                "page_size",
            )

        queryset = Message.objects.filter(conversation_id=conversation.pk).prefetch_related("receipts")
        if cursor:
            try:
                position = MessageCursor.decode(cursor)
            except ValueError:
                return cls.invalid("Invalid cursor", "cursor")
            queryset = queryset.filter(sequence__lt=position.before_sequence)

        rows = list(queryset.order_by("-sequence")[: page_size + 1])
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        rows.reverse()

        next_cursor = None
        if has_more and rows:
            next_cursor = MessageCursor(before_sequence=rows[0].sequence).encode()

        return ServiceResult.success(
            MessagePage(messages=rows, next_cursor=next_cursor, has_more=has_more)
        )


class ReadTrackingService(BaseService):
    """
    Service for read receipts and unread counters.

    Methods:
        mark_read: Mark every message in a chat read by a user
        reconcile: Recompute a chat's derived fields from its messages
    """

    @classmethod
    def mark_read(
        cls,
        chat_id: Any,
        user_id: Any,
        publisher: ChatEventPublisher | None = None,
    ) -> ServiceResult[int]:
        """
        Add user to the read-by set of every message lacking them and
        reset their unread counter.

        Idempotent: a second call adds nothing and returns 0.

        Returns:
            ServiceResult with the number of messages newly marked read

        Error codes:
            NOT_FOUND: Chat does not exist
            NOT_PARTICIPANT: User is not in the chat
        """
        publisher = publisher or ChatEventPublisher()

        conversation = get_conversation(chat_id)
        if conversation is None:
            return cls.not_found(f"Chat {chat_id} not found")
        if not is_participant(conversation.pk, user_id):
            return cls.not_participant()

        with cls.atomic():
            locked = (
                Conversation.objects.select_for_update()
                .only("message_sequence")
                .get(pk=conversation.pk)
            )
            unread_ids = list(
                Message.objects.filter(conversation_id=conversation.pk)
                .exclude(receipts__user_id=user_id)
                .values_list("id", flat=True)
            )
            MessageReadReceipt.objects.bulk_create(
                [MessageReadReceipt(message_id=message_id, user_id=user_id) for message_id in unread_ids],
                ignore_conflicts=True,
            )
            Participant.objects.filter(conversation_id=conversation.pk, user_id=user_id).update(
                unread_count=0,
                last_read_sequence=locked.message_sequence,
                updated_at=timezone.now(),
            )

            if unread_ids:
                publisher.publish_on_commit(
                    conversation.pk,
                    participant_ids_for(conversation.pk),
                    SUBSCRIPTION_CONFIG.REASON_READ,
                )
            else:
                publisher.publish_on_commit(conversation.pk, [user_id], SUBSCRIPTION_CONFIG.REASON_READ)

        cls.get_logger().debug(
            f"User {user_id} marked {len(unread_ids)} messages read in conversation {conversation.id}"
        )
        return ServiceResult.success(len(unread_ids))

    @classmethod
    def reconcile(
        cls,
        chat_id: Any,
        publisher: ChatEventPublisher | None = None,
    ) -> ServiceResult[dict]:
        """
        Recompute a chat's summary and unread counters from its messages.

        Unread for a participant is the number of messages after their
        last_read_sequence that they did not send. Safe to run at any time
        and any number of times.

        Returns:
            ServiceResult with {"summary_moved": bool, "counters_fixed": int}
        """
        publisher = publisher or ChatEventPublisher()

        conversation = get_conversation(chat_id)
        if conversation is None:
            return cls.not_found(f"Chat {chat_id} not found")

        with cls.atomic():
            Conversation.objects.select_for_update().only("pk").get(pk=conversation.pk)

            latest = (
                Message.objects.filter(conversation_id=conversation.pk)
                .order_by("-sequence")
                .first()
            )
            summary_moved = False
            if latest is not None:
                summary_moved = MessageService.apply_summary(conversation.pk, latest)

            counters_fixed = 0
            for participant in Participant.objects.filter(conversation_id=conversation.pk):
                expected = (
                    Message.objects.filter(
                        conversation_id=conversation.pk,
                        sequence__gt=participant.last_read_sequence,
                    )
                    .exclude(sender_id=participant.user_id)
                    .count()
                )
                if participant.unread_count != expected:
                    Participant.objects.filter(pk=participant.pk).update(unread_count=expected)
                    counters_fixed += 1

            if summary_moved or counters_fixed:
                publisher.publish_on_commit(
                    conversation.pk,
                    participant_ids_for(conversation.pk),
                    SUBSCRIPTION_CONFIG.REASON_RECONCILED,
                )

        if summary_moved or counters_fixed:
            cls.get_logger().info(
                f"Reconciled conversation {conversation.id}: "
                f"summary_moved={summary_moved}, counters_fixed={counters_fixed}"
            )
        return ServiceResult.success({"summary_moved": summary_moved, "counters_fixed": counters_fixed})
