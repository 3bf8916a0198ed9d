"""
Subscription fan-out over the Channels channel layer.

Writers announce committed changes with ChatEventPublisher; readers hold a
SnapshotSubscription that re-reads full state on every announcement.

Groups:
    chat.<chat_id>          - observers of one chat (messages, typing)
    user.<user_id>.chats    - observers of one user's chat list

Events are small notifications, never state:
    {"type": "chat.changed", "chat_id": "...", "reason": "message"}

Usage:
    publisher = ChatEventPublisher()
    publisher.publish_on_commit(chat.id, participant_ids, SUBSCRIPTION_CONFIG.REASON_MESSAGE)

    async with SnapshotSubscription(chat_group(chat.id), fetch) as subscription:
        first = await subscription.next(timeout=5)
        async for snapshot in subscription:
            ...

Note:
    Every subscription owns a private channel. Cancelling it leaves the
    group for that channel only; other subscribers are unaffected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from django.db import transaction

from chat.constants import SUBSCRIPTION_CONFIG
from core.exceptions import OperationTimeoutError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from typing import Any

logger = logging.getLogger(__name__)


def chat_group(chat_id: Any) -> str:
    """Channel layer group for one chat's observers."""
    return f"{SUBSCRIPTION_CONFIG.CHAT_GROUP_PREFIX}.{chat_id}"


def user_chats_group(user_id: Any) -> str:
    """Channel layer group for one user's chat-list observers."""
    return SUBSCRIPTION_CONFIG.USER_CHATS_GROUP_TEMPLATE.format(user_id=user_id)


class ChatEventPublisher:
    """
    Announce chat changes to the channel layer.

    Publishing is best effort: a committed write is never failed because
    an announcement could not be delivered. Observers re-read state on the
    next event they do receive.
    """

    def __init__(self, channel_layer=None):
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        return self._channel_layer or get_channel_layer()

    def publish(self, chat_id: Any, user_ids: Iterable[Any], reason: str) -> None:
        """Send a chat.changed event to the chat group and each user's list group."""
        layer = self.channel_layer
        if layer is None:
            logger.warning("No channel layer configured; dropping chat event")
            return

        event = {
            "type": SUBSCRIPTION_CONFIG.EVENT_TYPE,
            "chat_id": str(chat_id),
            "reason": reason,
        }
        groups = [chat_group(chat_id)] + [user_chats_group(user_id) for user_id in user_ids]
        for group in groups:
            try:
                async_to_sync(layer.group_send)(group, event)
            except Exception:
                logger.exception(f"Failed to publish {reason} event for chat {chat_id} to {group}")

        logger.debug(f"Published {reason} for chat {chat_id} to {len(groups)} groups")

    def publish_on_commit(self, chat_id: Any, user_ids: Iterable[Any], reason: str) -> None:
        """Publish once the surrounding transaction commits (immediately outside one)."""
        user_ids = list(user_ids)
        transaction.on_commit(lambda: self.publish(chat_id, user_ids, reason))


class SnapshotSubscription:
    """
    A cancelable stream of full snapshots for one group.

    The first call to next() returns the current snapshot; each later call
    waits for a change event and returns a freshly built snapshot. Several
    events arriving between two next() calls are delivered one snapshot per
    event, each reflecting the state at read time.

    Args:
        group: Channel layer group to join
        fetch_snapshot: Synchronous callable returning the current snapshot.
            Runs in a worker thread through database_sync_to_async.
        channel_layer: Optional layer; defaults to the configured one.
    """

    def __init__(self, group: str, fetch_snapshot: Callable[[], Any], channel_layer=None):
        self.group = group
        self.channel_name: str | None = None
        self._fetch_snapshot = fetch_snapshot
        self._channel_layer = channel_layer
        self._initial_sent = False
        self._cancelled = False

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else ("open" if self.channel_name else "new")
        return f"SnapshotSubscription(group={self.group!r}, {state})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def open(self) -> SnapshotSubscription:
        """Allocate a private channel and join the group. Idempotent."""
        if self._cancelled:
            raise RuntimeError("Subscription has been cancelled")
        if self.channel_name is None:
            if self._channel_layer is None:
                self._channel_layer = get_channel_layer()
            self.channel_name = await self._channel_layer.new_channel()
            await self._channel_layer.group_add(self.group, self.channel_name)
            logger.debug(f"Subscribed {self.channel_name} to {self.group}")
        return self

    async def next(self, timeout: float | None = None) -> Any:
        """
        Return the next snapshot.

        Raises:
            OperationTimeoutError: No change arrived within timeout seconds
            StopAsyncIteration: The subscription was cancelled
        """
        if self._cancelled:
            raise StopAsyncIteration
        await self.open()

        if not self._initial_sent:
            self._initial_sent = True
            return await self._snapshot()

        try:
            await asyncio.wait_for(self._channel_layer.receive(self.channel_name), timeout)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(
                f"No change on {self.group} within {timeout} seconds",
                details={"group": self.group, "timeout": timeout},
            ) from e
        return await self._snapshot()

    async def cancel(self) -> None:
        """Leave the group. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        if self.channel_name is not None:
            await self._channel_layer.group_discard(self.group, self.channel_name)
            logger.debug(f"Unsubscribed {self.channel_name} from {self.group}")

    async def _snapshot(self) -> Any:
        return await database_sync_to_async(self._fetch_snapshot)()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        return await self.next()

    async def __aenter__(self) -> SnapshotSubscription:
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cancel()
