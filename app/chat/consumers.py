"""
WebSocket consumers for the chat application.

Consumers push full snapshots, never deltas: every chat.changed event on
the channel layer makes the consumer rebuild the affected state from the
database and send it whole. Clients just replace what they render.

Consumers:
    ChatConsumer: One conversation (messages and chat record)
    ChatListConsumer: The connected user's chat list

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"].

Close Codes:
    4001: Not authenticated
    4003: Not a participant
    4004: Conversation not found

Message Types (from client, ChatConsumer):
    - message: {"type": "message", "text": "Hi"} or {"image_url": "..."}
    - typing: {"type": "typing", "is_typing": true}
    - read: {"type": "read"}

Message Types (to client):
    - messages: Full ordered message list of the chat
    - chat: Chat record (summary, unread map, typing users)
    - chats: Full chat list of the user (ChatListConsumer)
    - error: {"type": "error", "error_code": "...", "message": "..."}
"""

from __future__ import annotations

import logging
from uuid import UUID

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from chat.client import get_chat_client
from chat.constants import SUBSCRIPTION_CONFIG, ErrorCode
from chat.middleware import JWT_SUBPROTOCOL
from chat.serializers import MessageCreateSerializer, TypingSerializer
from chat.services import get_conversation, is_participant
from chat.snapshots import chat_snapshot, message_list_snapshot, user_chats_snapshot
from chat.subscriptions import chat_group, user_chats_group
from core.exceptions import BaseApplicationError

logger = logging.getLogger(__name__)


def _is_authenticated(user) -> bool:
    return bool(user) and not isinstance(user, AnonymousUser)


class SnapshotConsumerMixin:
    """Accept, frame decoding and error helpers shared by the chat consumers."""

    async def accept_connection(self):
        # Browsers drop the connection unless the chosen subprotocol is echoed
        subprotocols = self.scope.get("subprotocols") or []
        if subprotocols and subprotocols[0] == JWT_SUBPROTOCOL:
            await self.accept(subprotocol=JWT_SUBPROTOCOL)
        else:
            await self.accept()

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        """Decode a text frame; binary or malformed frames get an error frame."""
        try:
            content = await self.decode_json(text_data or "")
        except ValueError:
            await self.send_error(ErrorCode.INVALID_ARGUMENT, "Frames must be JSON objects")
            return
        await self.receive_json(content, **kwargs)

    async def send_error(self, error_code: str, message: str):
        await self.send_json({"type": "error", "error_code": error_code, "message": message})


class ChatConsumer(SnapshotConsumerMixin, AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for one conversation.

    Attributes:
        conversation_id: UUID of the connected conversation
        room_group_name: Channel layer group of the conversation
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.conversation_id: UUID | None = None
        self.room_group_name: str | None = None

    async def connect(self):
        """
        Validate the user and conversation, join the group, push snapshots.
        """
        self.conversation_id = self.scope["url_route"]["kwargs"]["conversation_id"]
        user = self.scope.get("user")

        if not _is_authenticated(user):
            logger.warning(f"Rejected unauthenticated connection to conversation {self.conversation_id}")
            await self.close(code=4001)
            return

        if not await database_sync_to_async(get_conversation)(self.conversation_id):
            logger.warning(f"User {user.id} tried to connect to non-existent conversation {self.conversation_id}")
            await self.close(code=4004)
            return

        if not await database_sync_to_async(is_participant)(self.conversation_id, user.id):
            logger.warning(f"User {user.id} is not a participant in conversation {self.conversation_id}")
            await self.close(code=4003)
            return

        self.room_group_name = chat_group(self.conversation_id)
        await self.channel_layer.group_add(self.room_group_name, self.channel_name)
        await self.accept_connection()
        logger.info(f"User {user.id} connected to conversation {self.conversation_id}")

        await self._send_messages()
        await self._send_chat()

    async def disconnect(self, close_code):
        """Leave the group and drop any typing state of this user."""
        if not self.room_group_name:
            return

        await self.channel_layer.group_discard(self.room_group_name, self.channel_name)
        user = self.scope.get("user")
        if _is_authenticated(user):
            await database_sync_to_async(get_chat_client().typing.clear)(self.conversation_id, user.id)
        logger.info(f"Disconnected from conversation {self.conversation_id} (code {close_code})")

    async def receive_json(self, content):
        """
        Dispatch a client frame.

        Args:
            content: Parsed JSON message from client
        """
        if not isinstance(content, dict):
            await self.send_error(ErrorCode.INVALID_ARGUMENT, "Frames must be JSON objects")
            return

        message_type = content.get("type")
        user = self.scope["user"]

        if message_type == "message":
            data = await self._validated(MessageCreateSerializer, content)
            if data is None:
                return
            await self._call(
                "send_message",
                self.conversation_id,
                user.id,
                user.display_name,
                text=data["text"],
                image_url=data["image_url"],
            )
        elif message_type == "typing":
            data = await self._validated(TypingSerializer, content)
            if data is None:
                return
            await self._call("set_typing", self.conversation_id, user.id, data["is_typing"])
        elif message_type == "read":
            await self._call("mark_read", self.conversation_id, user.id)
        else:
            await self.send_error(ErrorCode.INVALID_ARGUMENT, f"Unknown message type: {message_type}")

    async def chat_changed(self, event):
        """
        Handle chat.changed events from the channel layer.

        Typing changes only touch the chat record; everything else may
        also have changed the message list.
        """
        if event.get("reason") != SUBSCRIPTION_CONFIG.REASON_TYPING:
            await self._send_messages()
        await self._send_chat()

    async def _validated(self, serializer_class, content):
        """Validated frame data, or None after reporting the errors."""
        serializer = serializer_class(data=content)
        if serializer.is_valid():
            return serializer.validated_data
        errors = "; ".join(
            f"{field}: {' '.join(str(error) for error in field_errors)}"
            for field, field_errors in serializer.errors.items()
        )
        await self.send_error(ErrorCode.INVALID_ARGUMENT, f"Invalid frame: {errors}")
        return None

    async def _call(self, operation: str, *args, **kwargs):
        """Run a ChatClient operation in a worker thread, reporting failures."""
        method = getattr(get_chat_client(), operation)
        try:
            result = await database_sync_to_async(method)(*args, **kwargs)
        except BaseApplicationError as e:
            await self.send_error(e.error_code, e.message)
            return None

        if not result.success:
            await self.send_error(result.error_code, result.error)
        return result

    async def _send_messages(self):
        messages = await database_sync_to_async(message_list_snapshot)(self.conversation_id)
        await self.send_json({"type": "messages", "messages": messages})

    async def _send_chat(self):
        typing_tracker = get_chat_client().typing
        chat = await database_sync_to_async(chat_snapshot)(self.conversation_id, typing_tracker)
        await self.send_json({"type": "chat", "chat": chat})


class ChatListConsumer(SnapshotConsumerMixin, AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the connected user's chat list.

    Sends {"type": "chats", "chats": [...]} on connect and after every
    change to any chat the user is in.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.group_name: str | None = None

    async def connect(self):
        user = self.scope.get("user")
        if not _is_authenticated(user):
            logger.warning("Rejected unauthenticated chat list connection")
            await self.close(code=4001)
            return

        self.group_name = user_chats_group(user.id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept_connection()
        await self._send_chats()

    async def disconnect(self, close_code):
        if self.group_name:
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def receive_json(self, content):
        await self.send_error(ErrorCode.INVALID_ARGUMENT, "This socket is read-only")

    async def chat_changed(self, event):
        await self._send_chats()

    async def _send_chats(self):
        user = self.scope["user"]
        typing_tracker = get_chat_client().typing
        chats = await database_sync_to_async(user_chats_snapshot)(user.id, typing_tracker)
        await self.send_json({"type": "chats", "chats": chats})
