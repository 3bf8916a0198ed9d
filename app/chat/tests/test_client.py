"""
Tests for the ChatClient facade.

Covers the end-to-end scenarios collaborators rely on, bounded retry of
transient failures, and the identity and image helpers.
"""

from unittest import mock

import pytest
from django.core.files.storage import InMemoryStorage
from django.db import OperationalError
from freezegun import freeze_time

from chat.client import ChatClient, get_chat_client
from chat.constants import ErrorCode
from chat.models import Conversation, Message, Participant
from chat.services import MessageService
from chat.storage import StorageBlobStore
from core.decorators import TRY_AGAIN_MESSAGE
from core.exceptions import NotFoundError, StorageUnavailableError
from core.services import ServiceResult
from identity.services import IdentityService


def _unread(chat_id, user):
    return Participant.objects.get(conversation_id=chat_id, user=user).unread_count


class TestScenarios:
    def test_direct_chat_send_and_read(self, chat_client, ann, bob):
        chat = chat_client.resolve_chat([ann.id, bob.id]).unwrap()
        assert chat_client.resolve_chat([ann.id, bob.id]).unwrap().id == chat.id

        message = chat_client.send_message(chat.id, ann.id, "Ann", text="hi").unwrap()
        assert _unread(chat.id, bob) == 1

        chat_client.mark_read(chat.id, bob.id).unwrap()

        message.refresh_from_db()
        assert _unread(chat.id, bob) == 0
        assert set(message.read_by_ids()) == {ann.id, bob.id}

    def test_typing_expires_without_refresh(self, chat_client, ann, bob):
        chat = chat_client.resolve_chat([ann.id, bob.id]).unwrap()

        with freeze_time("2025-01-01 12:00:00") as frozen:
            chat_client.set_typing(chat.id, ann.id, True).unwrap()
            assert chat_client.typing.typing_user_ids(chat.id, [ann.id, bob.id]) == [ann.id]

            frozen.tick(2.5)
            assert chat_client.typing.typing_user_ids(chat.id, [ann.id, bob.id]) == []

    def test_group_chat_counters(self, chat_client, ann, bob, cara):
        chat = chat_client.resolve_chat([ann.id, bob.id, cara.id], is_group=True, name="Trip").unwrap()

        assert Conversation.objects.filter(name="Trip").count() == 1
        assert chat.is_group is True
        assert set(chat.participant_ids()) == {ann.id, bob.id, cara.id}

        chat_client.send_message(chat.id, ann.id, "Ann", text="Packing list?").unwrap()

        assert _unread(chat.id, ann) == 0
        assert _unread(chat.id, bob) == 1
        assert _unread(chat.id, cara) == 1

    def test_permanent_failures_come_back_as_results(self, chat_client, direct_chat, dave):
        result = chat_client.send_message(direct_chat.id, dave.id, "Dave", text="hi")

        assert result.success is False
        assert result.error_code == ErrorCode.NOT_PARTICIPANT

    def test_unwrap_raises_matching_exception(self, chat_client, ann):
        with pytest.raises(NotFoundError):
            chat_client.resolve_chat([ann.id, 424242]).unwrap()


class TestRetry:
    def test_transient_failure_is_retried(self, chat_client, direct_chat, ann):
        message = Message(text="hi")
        with mock.patch.object(
            MessageService,
            "send_message",
            side_effect=[StorageUnavailableError("down"), ServiceResult.success(message)],
        ) as send:
            result = chat_client.send_message(direct_chat.id, ann.id, "Ann", text="hi")

        assert result.data is message
        assert send.call_count == 2

    def test_gives_up_with_try_again(self, chat_client, direct_chat, ann):
        with mock.patch.object(MessageService, "send_message", side_effect=StorageUnavailableError("down")) as send:
            with pytest.raises(StorageUnavailableError) as exc_info:
                chat_client.send_message(direct_chat.id, ann.id, "Ann", text="hi")

        assert send.call_count == 3
        assert exc_info.value.message == TRY_AGAIN_MESSAGE

    def test_database_errors_are_transient(self, chat_client, direct_chat, ann):
        with mock.patch.object(MessageService, "list_messages", side_effect=OperationalError("gone")) as list_messages:
            with pytest.raises(StorageUnavailableError):
                chat_client.list_messages(direct_chat.id)

        assert list_messages.call_count == 3

    def test_permanent_failure_is_not_retried(self, chat_client, direct_chat, dave):
        with mock.patch.object(
            MessageService,
            "send_message",
            wraps=MessageService.send_message,
        ) as send:
            chat_client.send_message(direct_chat.id, dave.id, "Dave", text="hi")

        assert send.call_count == 1


class TestIdentity:
    def test_list_users_excludes_caller(self, chat_client, ann, bob, cara):
        users = chat_client.list_users(exclude_user_id=ann.id)

        assert [u.display_name for u in users] == ["Bob", "Cara"]

    def test_get_user(self, chat_client, ann):
        assert chat_client.get_user(ann.id) == ann
        assert chat_client.get_user(999999) is None

    def test_injected_identity_resolves_participants_and_senders(self, ann, bob):
        identity = mock.Mock(wraps=IdentityService)
        client = ChatClient(identity=identity)

        chat = client.resolve_chat([ann.id, bob.id]).unwrap()
        message = client.send_message(chat.id, ann.id, text="hi").unwrap()

        identity.get_users.assert_called_once_with([ann.id, bob.id])
        identity.get_user.assert_called_once_with(ann.id)
        assert message.sender_name == "Ann"

    def test_set_online(self, chat_client, ann):
        chat_client.set_online(ann.id, True).unwrap()

        ann.refresh_from_db()
        assert ann.is_online is True
        assert ann.last_seen is not None


class TestUploadImage:
    @pytest.fixture
    def client_with_memory_storage(self):
        return ChatClient(blob_store=StorageBlobStore(storage=InMemoryStorage(base_url="https://cdn.example.com/")))

    def test_upload_returns_url_under_chat_path(self, client_with_memory_storage, direct_chat, ann):
        url = client_with_memory_storage.upload_image(direct_chat.id, b"\xff\xd8jpeg", ann.id).unwrap()

        assert url.startswith(f"https://cdn.example.com/chats/{direct_chat.id}/images/")
        assert url.endswith(".jpg")

    def test_uploaded_url_can_be_sent(self, client_with_memory_storage, direct_chat, ann):
        client = client_with_memory_storage
        url = client.upload_image(direct_chat.id, b"\xff\xd8jpeg", ann.id).unwrap()

        message = client.send_message(direct_chat.id, ann.id, "Ann", image_url=url).unwrap()

        assert message.is_image is True
        assert message.image_url == url

    def test_any_blob_store_with_upload_can_be_injected(self, direct_chat, ann):
        class RecordingBlobStore:
            def __init__(self):
                self.files = {}

            def upload(self, data, path):
                self.files[path] = data
                return f"memory://{path}"

        store = RecordingBlobStore()
        client = ChatClient(blob_store=store)

        url = client.upload_image(direct_chat.id, b"png", ann.id).unwrap()

        path = url.removeprefix("memory://")
        assert path.startswith(f"chats/{direct_chat.id}/images/")
        assert store.files == {path: b"png"}

    def test_empty_upload_is_invalid(self, client_with_memory_storage, direct_chat, ann):
        result = client_with_memory_storage.upload_image(direct_chat.id, b"", ann.id)

        assert result.error_code == ErrorCode.INVALID_ARGUMENT

    def test_non_participant_cannot_upload(self, client_with_memory_storage, direct_chat, dave):
        result = client_with_memory_storage.upload_image(direct_chat.id, b"data", dave.id)

        assert result.error_code == ErrorCode.NOT_PARTICIPANT


def test_get_chat_client_is_process_wide():
    assert get_chat_client() is get_chat_client()
    assert isinstance(get_chat_client(), ChatClient)
