"""
Room membership registry for realtime chat delivery.

A room is the set of live connections subscribed to one conversation.
Subscribing hands back a RoomSubscription capability; unsubscribing
requires that token, and release() tears down every room a connection
joined when it closes, so no subscription outlives its connection.

Fan-out goes through the Channels layer: each room is a channel layer
group ("chat_<conversation_id>"), which reaches consumers in every worker
process. The registry keeps a local index of this process's
subscriptions so membership checks and teardown never need a round trip
to Redis.

Usage:
    rooms = RoomRegistry()

    subscription = await rooms.subscribe(conversation.id, self.channel_name)
    await rooms.broadcast(conversation.id, {"type": "chat.message", ...})
    await rooms.unsubscribe(subscription)

    # On disconnect
    await rooms.release(self.channel_name)

Related files:
    - consumers.py: the only caller
    - routing.py: creates the process-wide registry
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from channels.layers import get_channel_layer

from chat.constants import REALTIME_CONFIG

if TYPE_CHECKING:
    from channels.layers import BaseChannelLayer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomSubscription:
    """
    Capability for one connection's membership in one room.

    Attributes:
        conversation_id: Conversation the room belongs to
        channel_name: Channel layer name of the subscribed consumer
        token: Opaque value that must match to unsubscribe
    """

    conversation_id: int
    channel_name: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)


class RoomRegistry:
    """
    Publish/subscribe registry keyed by conversation id.

    All mutations take an asyncio.Lock, so a join racing a disconnect on
    the same connection cannot leave a dangling group membership.
    """

    def __init__(self, channel_layer: BaseChannelLayer | None = None):
        self._channel_layer = channel_layer
        self._lock = asyncio.Lock()
        # channel_name -> {conversation_id: subscription}
        self._by_channel: dict[str, dict[int, RoomSubscription]] = {}
        # conversation_id -> {channel_name}
        self._by_room: dict[int, set[str]] = {}

    @property
    def channel_layer(self) -> BaseChannelLayer:
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    @staticmethod
    def group_name(conversation_id) -> str:
        """Channel layer group for a conversation."""
        return f"{REALTIME_CONFIG.ROOM_GROUP_PREFIX}_{conversation_id}"

    # =========================================================================
    # Membership
    # =========================================================================

    async def subscribe(self, conversation_id: int, channel_name: str) -> RoomSubscription:
        """
        Add a connection to a room.

        Idempotent: subscribing again returns the existing subscription
        without touching the channel layer.
        """
        async with self._lock:
            rooms = self._by_channel.setdefault(channel_name, {})
            existing = rooms.get(conversation_id)
            if existing is not None:
                return existing

            await self.channel_layer.group_add(self.group_name(conversation_id), channel_name)
            subscription = RoomSubscription(conversation_id, channel_name)
            rooms[conversation_id] = subscription
            self._by_room.setdefault(conversation_id, set()).add(channel_name)

        logger.debug(f"{channel_name} joined room {conversation_id}")
        return subscription

    async def unsubscribe(self, subscription: RoomSubscription) -> bool:
        """
        Remove a subscription.

        Returns False if the subscription is no longer current (already
        released, or its token was superseded).
        """
        async with self._lock:
            current = self._by_channel.get(subscription.channel_name, {}).get(
                subscription.conversation_id
            )
            if current is None or current.token != subscription.token:
                return False
            await self._remove(subscription)

        logger.debug(
            f"{subscription.channel_name} left room {subscription.conversation_id}"
        )
        return True

    async def leave(self, conversation_id: int, channel_name: str) -> bool:
        """Unsubscribe a connection from a room without holding its token."""
        subscription = self._by_channel.get(channel_name, {}).get(conversation_id)
        if subscription is None:
            return False
        return await self.unsubscribe(subscription)

    async def release(self, channel_name: str) -> list[RoomSubscription]:
        """
        Drop every subscription held by a connection.

        Called from the consumer's disconnect handler, including abnormal
        disconnects.
        """
        async with self._lock:
            subscriptions = list(self._by_channel.get(channel_name, {}).values())
            for subscription in subscriptions:
                await self._remove(subscription)
            self._by_channel.pop(channel_name, None)

        if subscriptions:
            logger.debug(f"Released {len(subscriptions)} rooms for {channel_name}")
        return subscriptions

    async def _remove(self, subscription: RoomSubscription) -> None:
        await self.channel_layer.group_discard(
            self.group_name(subscription.conversation_id),
            subscription.channel_name,
        )
        rooms = self._by_channel.get(subscription.channel_name)
        if rooms is not None:
            rooms.pop(subscription.conversation_id, None)
            if not rooms:
                del self._by_channel[subscription.channel_name]

        members = self._by_room.get(subscription.conversation_id)
        if members is not None:
            members.discard(subscription.channel_name)
            if not members:
                del self._by_room[subscription.conversation_id]

    # =========================================================================
    # Queries
    # =========================================================================

    def is_subscribed(self, conversation_id: int, channel_name: str) -> bool:
        return conversation_id in self._by_channel.get(channel_name, {})

    def subscriptions_for(self, channel_name: str) -> list[RoomSubscription]:
        return list(self._by_channel.get(channel_name, {}).values())

    def members(self, conversation_id: int) -> frozenset[str]:
        """Connections in this process subscribed to the room."""
        return frozenset(self._by_room.get(conversation_id, ()))

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def broadcast(self, conversation_id: int, event: dict) -> None:
        """Send a channel layer event to every connection in the room."""
        await self.channel_layer.group_send(self.group_name(conversation_id), event)
