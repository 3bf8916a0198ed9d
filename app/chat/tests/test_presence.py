"""
Tests for typing state (TypingTracker) and describe_typing().
"""

from unittest import mock

import pytest
from freezegun import freeze_time
from kombu.exceptions import OperationalError as BrokerError

from chat.constants import ErrorCode
from chat.presence import TypingTracker, describe_typing, typing_key
from core.exceptions import StorageUnavailableError


class TestDescribeTyping:
    @pytest.mark.parametrize(
        "names,expected",
        [
            ([], ""),
            (["Ann"], "Ann is typing..."),
            (["Ann", "Bob"], "Ann and Bob are typing..."),
            (["Ann", "Bob", "Cara"], "3 people are typing..."),
        ],
    )
    def test_phrases(self, names, expected):
        assert describe_typing(names) == expected


class TestTypingTracker:
    def test_key_format(self):
        assert typing_key("abc", 7) == "typing:abc:7"

    def test_set_and_read(self, group_chat, ann, bob, cara):
        tracker = TypingTracker()

        tracker.set_typing(group_chat.id, cara.id, True)
        tracker.set_typing(group_chat.id, ann.id, True)

        # Participant order, not call order
        assert tracker.typing_user_ids(group_chat.id, [ann.id, bob.id, cara.id]) == [ann.id, cara.id]

    def test_clear_with_false(self, direct_chat, ann, bob):
        tracker = TypingTracker()
        tracker.set_typing(direct_chat.id, ann.id, True)

        result = tracker.set_typing(direct_chat.id, ann.id, False)

        assert result.success is True
        assert tracker.typing_user_ids(direct_chat.id, [ann.id, bob.id]) == []

    def test_expires_after_ttl(self, direct_chat, ann, bob):
        tracker = TypingTracker()

        with freeze_time("2025-01-01 12:00:00") as frozen:
            tracker.set_typing(direct_chat.id, ann.id, True)
            frozen.tick(1)
            assert tracker.typing_user_ids(direct_chat.id, [ann.id, bob.id]) == [ann.id]

            frozen.tick(2)
            assert tracker.typing_user_ids(direct_chat.id, [ann.id, bob.id]) == []

    def test_refresh_extends_ttl(self, direct_chat, ann):
        tracker = TypingTracker()

        with freeze_time("2025-01-01 12:00:00") as frozen:
            tracker.set_typing(direct_chat.id, ann.id, True)
            frozen.tick(1.5)
            tracker.set_typing(direct_chat.id, ann.id, True)
            frozen.tick(1.5)

            assert tracker.typing_user_ids(direct_chat.id, [ann.id]) == [ann.id]

    def test_non_participant_rejected(self, direct_chat, dave):
        tracker = TypingTracker()

        result = tracker.set_typing(direct_chat.id, dave.id, True)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT
        assert tracker.typing_user_ids(direct_chat.id, [dave.id]) == []

    def test_unknown_chat_rejected(self, ann):
        result = TypingTracker().set_typing("not-a-uuid", ann.id, True)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT

    def test_cache_failure_raises_storage_unavailable(self, direct_chat, ann):
        cache = mock.Mock()
        cache.set.side_effect = ConnectionError("redis down")
        tracker = TypingTracker(cache=cache)

        with pytest.raises(StorageUnavailableError):
            tracker.set_typing(direct_chat.id, ann.id, True)

    def test_clear_swallows_cache_failure(self, direct_chat, ann):
        cache = mock.Mock()
        cache.delete.side_effect = ConnectionError("redis down")

        TypingTracker(cache=cache).clear(direct_chat.id, ann.id)

        cache.delete.assert_called_once_with(typing_key(direct_chat.id, ann.id))

    def test_publishes_typing_event(self, direct_chat, ann, bob):
        publisher = mock.Mock()
        tracker = TypingTracker(publisher=publisher)

        tracker.set_typing(direct_chat.id, ann.id, True)

        publisher.publish_on_commit.assert_called_once_with(direct_chat.id, [ann.id, bob.id], "typing")

    def test_typing_schedules_expiry_check(self, direct_chat, ann):
        with mock.patch("chat.tasks.expire_typing.apply_async") as apply_async:
            TypingTracker().set_typing(direct_chat.id, ann.id, True)

        apply_async.assert_called_once_with(args=[str(direct_chat.id), ann.id], countdown=2)

    def test_clearing_schedules_nothing(self, direct_chat, ann):
        with mock.patch("chat.tasks.expire_typing.apply_async") as apply_async:
            TypingTracker().set_typing(direct_chat.id, ann.id, False)

        apply_async.assert_not_called()

    def test_broker_failure_does_not_fail_typing(self, direct_chat, ann):
        tracker = TypingTracker()
        with mock.patch("chat.tasks.expire_typing.apply_async", side_effect=BrokerError("broker down")):
            result = tracker.set_typing(direct_chat.id, ann.id, True)

        assert result.success
        assert tracker.is_typing(direct_chat.id, ann.id)

    def test_is_typing(self, direct_chat, ann, bob):
        tracker = TypingTracker()
        tracker.set_typing(direct_chat.id, ann.id, True)

        assert tracker.is_typing(direct_chat.id, ann.id)
        assert not tracker.is_typing(direct_chat.id, bob.id)
