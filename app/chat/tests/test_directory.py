"""
Tests for the chat directory (ConversationService.resolve_chat).

Verifies:
- Direct chats are found, never duplicated, regardless of id order
- A losing concurrent insert falls back to the winner's chat
- Group chats are always new and validate their name
- Unknown users and bad participant counts are rejected
"""

from unittest import mock

from chat.constants import ErrorCode
from chat.models import Conversation, ConversationType, DirectConversationPair, Participant
from chat.services import ConversationService
from chat.tests.factories import ConversationFactory


class TestResolveDirect:
    def test_creates_direct_chat_for_new_pair(self, ann, bob):
        result = ConversationService.resolve_chat([ann.id, bob.id])

        assert result.success is True
        chat = result.data
        assert chat.conversation_type == ConversationType.DIRECT
        assert chat.participant_ids() == [ann.id, bob.id]
        assert chat.created_by_id == ann.id
        assert chat.last_message_at is not None
        assert DirectConversationPair.objects.filter(conversation=chat).exists()

    def test_returns_existing_chat_for_same_pair(self, ann, bob):
        first = ConversationService.resolve_chat([ann.id, bob.id]).data
        second = ConversationService.resolve_chat([ann.id, bob.id]).data

        assert first.id == second.id
        assert Conversation.objects.count() == 1

    def test_order_of_ids_does_not_matter(self, ann, bob):
        first = ConversationService.resolve_chat([ann.id, bob.id]).data
        second = ConversationService.resolve_chat([bob.id, ann.id]).data

        assert first.id == second.id

    def test_string_ids_accepted(self, ann, bob):
        first = ConversationService.resolve_chat([str(ann.id), str(bob.id)]).data
        second = ConversationService.resolve_chat([ann.id, bob.id]).data

        assert first.id == second.id

    def test_name_ignored_for_direct(self, ann, bob):
        chat = ConversationService.resolve_chat([ann.id, bob.id], name="Ignored").data

        assert chat.name == ""

    def test_created_by_is_prepended(self, ann, bob):
        chat = ConversationService.resolve_chat([bob.id], created_by=ann.id).data

        assert chat.participant_ids() == [ann.id, bob.id]
        assert chat.created_by_id == ann.id

    def test_same_user_twice_is_invalid(self, ann):
        result = ConversationService.resolve_chat([ann.id, ann.id])

        assert result.success is False
        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    def test_three_users_without_group_is_invalid(self, ann, bob, cara):
        result = ConversationService.resolve_chat([ann.id, bob.id, cara.id])

        assert result.success is False
        assert result.error_code == ErrorCode.INVALID_ARGUMENT
        assert Conversation.objects.count() == 0

    def test_empty_list_is_invalid(self, db):
        result = ConversationService.resolve_chat([])

        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    def test_unknown_user_is_not_found(self, ann):
        result = ConversationService.resolve_chat([ann.id, 999999])

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_FOUND
        assert Conversation.objects.count() == 0

    def test_malformed_id_is_not_found(self, ann):
        result = ConversationService.resolve_chat([ann.id, "not-a-user"])

        assert result.error_code == ErrorCode.NOT_FOUND

    def test_lost_insert_race_returns_winning_chat(self, ann, bob):
        """
        Simulate another request committing the pair between our lookup
        and our insert: the first lookup misses, the insert hits the
        unique constraint, the repeated lookup finds the winner.
        """
        low, high = DirectConversationPair.canonical(ann.id, bob.id)
        winner = ConversationFactory(created_by=bob)
        DirectConversationPair.objects.create(
            conversation=winner, user_lower_id=low, user_higher_id=high
        )
        Participant.objects.create(conversation=winner, user=bob, position=0)
        Participant.objects.create(conversation=winner, user=ann, position=1)

        manager = DirectConversationPair.objects
        original = manager.select_related
        calls = []

        def first_lookup_misses(*args):
            calls.append(args)
            queryset = original(*args)
            return queryset.none() if len(calls) == 1 else queryset

        with mock.patch.object(manager, "select_related", side_effect=first_lookup_misses):
            result = ConversationService.resolve_chat([ann.id, bob.id])

        assert result.success is True
        assert result.data.id == winner.id
        assert len(calls) == 2
        assert Conversation.objects.count() == 1


class TestResolveGroup:
    def test_creates_group_with_name(self, ann, bob, cara):
        result = ConversationService.resolve_chat([ann.id, bob.id, cara.id], is_group=True, name="Team")

        assert result.success is True
        chat = result.data
        assert chat.is_group is True
        assert chat.name == "Team"
        assert chat.participant_ids() == [ann.id, bob.id, cara.id]

    def test_group_always_new(self, ann, bob):
        first = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="Team").data
        second = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="Team").data

        assert first.id != second.id

    def test_group_does_not_collide_with_direct_chat(self, ann, bob):
        direct = ConversationService.resolve_chat([ann.id, bob.id]).data
        group = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="Pair").data

        assert direct.id != group.id
        assert ConversationService.resolve_chat([ann.id, bob.id]).data.id == direct.id

    def test_name_is_trimmed(self, ann, bob):
        chat = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="  Team  ").data

        assert chat.name == "Team"

    def test_missing_name_is_invalid(self, ann, bob):
        result = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="   ")

        assert result.error_code == ErrorCode.INVALID_ARGUMENT
        assert result.errors == {"name": ["Group name is required"]}

    def test_name_of_fifty_characters_allowed(self, ann, bob):
        result = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="x" * 50)

        assert result.success is True

    def test_name_over_fifty_characters_is_invalid(self, ann, bob):
        result = ConversationService.resolve_chat([ann.id, bob.id], is_group=True, name="x" * 51)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT
        assert Conversation.objects.count() == 0

    def test_group_of_one_is_invalid(self, ann):
        result = ConversationService.resolve_chat([ann.id], is_group=True, name="Solo")

        assert result.error_code == ErrorCode.INVALID_ARGUMENT
