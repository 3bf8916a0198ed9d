"""
Tests for the message log (MessageService).

Verifies:
- send_message side effects: sequence, sender receipt, unread counters,
  chat summary, typing cleared
- Validation order and error codes
- Ordering and monotonic sent_at
- Backward cursor pagination
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from chat.constants import ErrorCode
from chat.models import Conversation, Message, MessageKind, Participant
from chat.pagination import MessageCursor
from chat.presence import TypingTracker
from chat.services import MessageService
from chat.tests.factories import MessageFactory


def _unread(chat, user):
    return Participant.objects.get(conversation=chat, user=user).unread_count


class TestSendMessage:
    def test_text_message_is_stored(self, direct_chat, ann):
        result = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="hi")

        assert result.success is True
        message = result.data
        assert message.text == "hi"
        assert message.kind == MessageKind.TEXT
        assert message.sender_name == "Ann"
        assert message.sequence == 1

    def test_sender_is_first_reader(self, direct_chat, ann):
        message = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="hi").data

        assert message.read_by_ids() == [ann.id]
        assert message.is_read_by_others is False

    def test_increments_unread_for_others_only(self, group_chat, ann, bob, cara):
        MessageService.send_message(group_chat.id, ann.id, "Ann", text="one")
        MessageService.send_message(group_chat.id, ann.id, "Ann", text="two")
        MessageService.send_message(group_chat.id, bob.id, "Bob", text="three")

        assert _unread(group_chat, ann) == 1
        assert _unread(group_chat, bob) == 2
        assert _unread(group_chat, cara) == 3

    def test_updates_chat_summary(self, direct_chat, ann):
        message = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="latest").data

        direct_chat.refresh_from_db()
        assert direct_chat.last_message_id == message.id
        assert direct_chat.last_message_at == message.sent_at
        assert direct_chat.last_message_sequence == message.sequence

    def test_sequences_increase(self, direct_chat, ann, bob):
        first = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="a").data
        second = MessageService.send_message(direct_chat.id, bob.id, "Bob", text="b").data

        assert (first.sequence, second.sequence) == (1, 2)

    def test_image_message(self, direct_chat, ann):
        result = MessageService.send_message(
            direct_chat.id, ann.id, "Ann", image_url="https://cdn.example.com/chats/x.jpg"
        )

        assert result.success is True
        assert result.data.kind == MessageKind.IMAGE
        assert result.data.text == ""

    def test_text_is_trimmed(self, direct_chat, ann):
        message = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="  hi  ").data

        assert message.text == "hi"

    def test_sender_name_falls_back_to_display_name(self, direct_chat, ann):
        message = MessageService.send_message(direct_chat.id, ann.id, text="hi").data

        assert message.sender_name == "Ann"

    def test_clears_sender_typing(self, direct_chat, ann):
        tracker = TypingTracker()
        tracker.set_typing(direct_chat.id, ann.id, True)
        assert tracker.typing_user_ids(direct_chat.id, [ann.id]) == [ann.id]

        MessageService.send_message(direct_chat.id, ann.id, "Ann", text="hi", typing_tracker=tracker)

        assert tracker.typing_user_ids(direct_chat.id, [ann.id]) == []

    def test_sent_at_never_goes_backwards(self, direct_chat, ann):
        future = timezone.now() + timedelta(hours=1)
        Conversation.objects.filter(pk=direct_chat.pk).update(last_message_at=future)

        message = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="hi").data

        assert message.sent_at == future

    def test_equal_timestamps_keep_send_order(self, direct_chat, ann, bob):
        with freeze_time("2025-01-01 12:00:00"):
            MessageService.send_message(direct_chat.id, ann.id, "Ann", text="first")
            MessageService.send_message(direct_chat.id, bob.id, "Bob", text="second")
            MessageService.send_message(direct_chat.id, ann.id, "Ann", text="third")

        texts = list(Message.objects.filter(conversation=direct_chat).values_list("text", flat=True))
        assert texts == ["first", "second", "third"]


class TestSendMessageValidation:
    def test_unknown_chat_is_not_found(self, ann):
        result = MessageService.send_message("00000000-0000-0000-0000-000000000000", ann.id, "Ann", text="hi")

        assert result.error_code == ErrorCode.NOT_FOUND

    def test_malformed_chat_id_is_not_found(self, ann):
        result = MessageService.send_message("not-a-uuid", ann.id, "Ann", text="hi")

        assert result.error_code == ErrorCode.NOT_FOUND

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_empty_message_is_invalid(self, direct_chat, ann, text):
        result = MessageService.send_message(direct_chat.id, ann.id, "Ann", text=text)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT
        assert Message.objects.count() == 0

    def test_thousand_characters_allowed(self, direct_chat, ann):
        result = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="x" * 1000)

        assert result.success is True

    def test_over_thousand_characters_is_invalid(self, direct_chat, ann):
        result = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="x" * 1001)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    def test_non_participant_rejected(self, direct_chat, dave):
        result = MessageService.send_message(direct_chat.id, dave.id, "Dave", text="hi")

        assert result.error_code == ErrorCode.NOT_PARTICIPANT
        assert Message.objects.count() == 0

    def test_rejected_send_changes_nothing(self, direct_chat, bob, dave):
        MessageService.send_message(direct_chat.id, dave.id, "Dave", text="hi")

        direct_chat.refresh_from_db()
        assert direct_chat.message_sequence == 0
        assert direct_chat.last_message_id is None
        assert _unread(direct_chat, bob) == 0


class TestApplySummary:
    def test_older_message_does_not_move_summary(self, direct_chat, ann):
        first = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="a").data
        second = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="b").data

        moved = MessageService.apply_summary(direct_chat.id, first)

        direct_chat.refresh_from_db()
        assert moved is False
        assert direct_chat.last_message_id == second.id

    def test_same_message_twice_is_noop(self, direct_chat, ann):
        message = MessageService.send_message(direct_chat.id, ann.id, "Ann", text="a").data

        assert MessageService.apply_summary(direct_chat.id, message) is False


class TestListMessages:
    def _send(self, chat, user, count):
        return [
            MessageService.send_message(chat.id, user.id, user.display_name, text=f"m{i}").data
            for i in range(count)
        ]

    def test_empty_chat(self, direct_chat):
        page = MessageService.list_messages(direct_chat.id).data

        assert page.messages == []
        assert page.next_cursor is None
        assert page.has_more is False

    def test_first_page_holds_newest_oldest_first(self, direct_chat, ann):
        sent = self._send(direct_chat, ann, 5)

        page = MessageService.list_messages(direct_chat.id, page_size=3).data

        assert [m.id for m in page.messages] == [m.id for m in sent[2:]]
        assert page.has_more is True
        assert page.next_cursor is not None

    def test_pages_concatenate_to_full_history(self, direct_chat, ann, bob):
        sent = self._send(direct_chat, ann, 4) + self._send(direct_chat, bob, 3)

        collected = []
        cursor = None
        while True:
            page = MessageService.list_messages(direct_chat.id, page_size=2, cursor=cursor).data
            collected = page.messages + collected
            if not page.has_more:
                break
            cursor = page.next_cursor

        assert [m.id for m in collected] == [m.id for m in sent]
        assert page.next_cursor is None

    def test_exact_page_has_no_more(self, direct_chat, ann):
        self._send(direct_chat, ann, 3)

        page = MessageService.list_messages(direct_chat.id, page_size=3).data

        assert len(page.messages) == 3
        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.parametrize("page_size", [0, 101, "abc"])
    def test_bad_page_size_is_invalid(self, direct_chat, page_size):
        result = MessageService.list_messages(direct_chat.id, page_size=page_size)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    @pytest.mark.parametrize("cursor", ["garbage", "e30=", MessageCursor(before_sequence=0).encode()])
    def test_bad_cursor_is_invalid(self, direct_chat, cursor):
        result = MessageService.list_messages(direct_chat.id, cursor=cursor)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    def test_unknown_chat_is_not_found(self, db):
        result = MessageService.list_messages("00000000-0000-0000-0000-000000000000")

        assert result.error_code == ErrorCode.NOT_FOUND

    def test_messages_from_other_chats_excluded(self, direct_chat, group_chat, ann):
        self._send(direct_chat, ann, 2)
        MessageFactory(conversation=group_chat, sender=ann, sequence=1)

        page = MessageService.list_messages(direct_chat.id).data

        assert len(page.messages) == 2
        assert all(str(m.conversation_id) == str(direct_chat.id) for m in page.messages)
