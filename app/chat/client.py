"""
ChatClient: the single entry point collaborators use.

One instance is built per process by ChatConfig.ready() and handed to
views and consumers (get_chat_client()). Collaborators are injected
through the constructor, so tests and alternative deployments can swap
the cache, channel layer, identity directory or blob store.

Every synchronous operation is wrapped so that database connectivity
errors become StorageUnavailableError and transient errors are retried
with exponential backoff before a generic "try again" error surfaces.
Permanent failures come back as ServiceResult failures and are never
retried.

Usage:
    client = get_chat_client()

    chat = client.resolve_chat([ann.id, bob.id]).unwrap()
    client.send_message(chat.id, ann.id, "Ann", text="hi")

    async with client.watch_messages(chat.id) as subscription:
        async for messages in subscription:
            render(messages)
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from django.apps import apps

from chat.constants import MESSAGE_CONFIG, ErrorCode
from chat.presence import TypingTracker
from chat.services import ConversationService, MessageService, ReadTrackingService, is_participant
from chat.snapshots import chat_snapshot, message_list_snapshot, user_chats_snapshot
from chat.storage import StorageBlobStore, chat_image_path
from chat.subscriptions import ChatEventPublisher, SnapshotSubscription, chat_group, user_chats_group
from core.decorators import retry_transient, translate_db_errors
from core.services import ServiceResult
from identity.services import IdentityService

if TYPE_CHECKING:
    from typing import Any

    from chat.models import Conversation, Message
    from chat.pagination import MessagePage
    from core.protocols import BlobStore, CacheBackend, IdentityProvider
    from identity.models import User

logger = logging.getLogger(__name__)


def get_chat_client() -> ChatClient:
    """The process-wide ChatClient built by ChatConfig.ready()."""
    return apps.get_app_config("chat").client


class ChatClient:
    """
    Facade over the chat core.

    Args:
        identity: IdentityProvider, defaults to IdentityService
        cache: CacheBackend for typing state, defaults to Django's cache
        channel_layer: Channel layer for fan-out, defaults to the configured one
        blob_store: BlobStore for images, defaults to StorageBlobStore
    """

    def __init__(
        self,
        identity: IdentityProvider | None = None,
        cache: CacheBackend | None = None,
        channel_layer=None,
        blob_store: BlobStore | None = None,
    ):
        self.identity = identity or IdentityService
        self.channel_layer = channel_layer
        self.publisher = ChatEventPublisher(channel_layer)
        self.typing = TypingTracker(cache=cache, publisher=self.publisher)
        self.blob_store = blob_store or StorageBlobStore()

    # -------------------------------------------------------------------------
    # Chat directory
    # -------------------------------------------------------------------------

    @retry_transient()
    @translate_db_errors
    def resolve_chat(
        self,
        participant_ids: list[Any],
        is_group: bool = False,
        name: str | None = None,
        created_by: Any = None,
    ) -> ServiceResult[Conversation]:
        return ConversationService.resolve_chat(
            participant_ids,
            is_group=is_group,
            name=name,
            created_by=created_by,
            publisher=self.publisher,
            identity=self.identity,
        )

    # -------------------------------------------------------------------------
    # Message log
    # -------------------------------------------------------------------------

    @retry_transient()
    @translate_db_errors
    def send_message(
        self,
        chat_id: Any,
        sender_id: Any,
        sender_name: str | None = None,
        text: str | None = None,
        image_url: str | None = None,
    ) -> ServiceResult[Message]:
        return MessageService.send_message(
            chat_id,
            sender_id,
            sender_name,
            text=text,
            image_url=image_url,
            typing_tracker=self.typing,
            publisher=self.publisher,
            identity=self.identity,
        )

    @retry_transient()
    @translate_db_errors
    def list_messages(
        self,
        chat_id: Any,
        page_size: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
        cursor: str | None = None,
    ) -> ServiceResult[MessagePage]:
        return MessageService.list_messages(chat_id, page_size=page_size, cursor=cursor)

    # -------------------------------------------------------------------------
    # Read tracking and typing
    # -------------------------------------------------------------------------

    @retry_transient()
    @translate_db_errors
    def mark_read(self, chat_id: Any, user_id: Any) -> ServiceResult[int]:
        return ReadTrackingService.mark_read(chat_id, user_id, publisher=self.publisher)

    @retry_transient()
    @translate_db_errors
    def set_typing(self, chat_id: Any, user_id: Any, is_typing: bool) -> ServiceResult[None]:
        return self.typing.set_typing(chat_id, user_id, is_typing)

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def watch_messages(self, chat_id: Any, window: int | None = None) -> SnapshotSubscription:
        """
        Subscribe to a chat's full ordered message list.

        The subscription is not open yet: use `async with`, or await
        open() and cancel() explicitly.
        """
        return SnapshotSubscription(
            chat_group(chat_id),
            lambda: message_list_snapshot(chat_id, window=window),
            channel_layer=self.channel_layer,
        )

    def watch_user_chats(self, user_id: Any) -> SnapshotSubscription:
        """Subscribe to a user's chat list, most recent activity first."""
        return SnapshotSubscription(
            user_chats_group(user_id),
            lambda: user_chats_snapshot(user_id, typing_tracker=self.typing),
            channel_layer=self.channel_layer,
        )

    def watch_chat(self, chat_id: Any) -> SnapshotSubscription:
        """Subscribe to one chat's record (summary, unread map, typing users)."""
        return SnapshotSubscription(
            chat_group(chat_id),
            lambda: chat_snapshot(chat_id, typing_tracker=self.typing),
            channel_layer=self.channel_layer,
        )

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @retry_transient()
    @translate_db_errors
    def list_users(self, exclude_user_id: Any = None) -> list[User]:
        return self.identity.list_users(exclude_user_id=exclude_user_id).data

    @retry_transient()
    @translate_db_errors
    def get_user(self, user_id: Any) -> User | None:
        result = self.identity.get_user(user_id)
        return result.data if result.success else None

    @retry_transient()
    @translate_db_errors
    def set_online(self, user_id: Any, is_online: bool) -> ServiceResult[None]:
        return self.identity.set_online(user_id, is_online)

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    @retry_transient()
    @translate_db_errors
    def upload_image(
        self,
        chat_id: Any,
        data: bytes,
        uploader_id: Any,
    ) -> ServiceResult[str]:
        """
        Store an image for a chat and return its URL.

        The URL is then passed to send_message(image_url=...).

        Error codes:
            INVALID_ARGUMENT: Empty upload
            NOT_PARTICIPANT: Uploader is not in the chat
        """
        if not data:
            return ServiceResult.failure("Image is empty", error_code=ErrorCode.INVALID_ARGUMENT)
        if not is_participant(chat_id, uploader_id):
            return ServiceResult.failure(
                "You are not a participant in this chat",
                error_code=ErrorCode.NOT_PARTICIPANT,
            )

        path = chat_image_path(chat_id, uuid.uuid4().hex)
        url = self.blob_store.upload(data, path)
        logger.info(f"User {uploader_id} uploaded image for chat {chat_id}")
        return ServiceResult.success(url)
