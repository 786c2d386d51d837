"""
Tests for RoomRegistry.

Runs against a private InMemoryChannelLayer so no database or Redis is
involved. Each test drives the registry inside asyncio.run().
"""

import asyncio
from dataclasses import replace

from channels.layers import InMemoryChannelLayer

from chat.rooms import RoomRegistry, RoomSubscription


def run(coro):
    return asyncio.run(coro)


async def _nothing_arrives(layer, channel_name) -> bool:
    try:
        await asyncio.wait_for(layer.receive(channel_name), timeout=0.05)
    except asyncio.TimeoutError:
        return True
    return False


# =============================================================================
# TestRoomRegistrySubscribe
# =============================================================================


class TestRoomRegistrySubscribe:
    """Tests for RoomRegistry.subscribe()."""

    def test_subscribe_returns_capability(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            subscription = await rooms.subscribe(7, "chan.a")
            return rooms, subscription

        rooms, subscription = run(scenario())

        assert isinstance(subscription, RoomSubscription)
        assert subscription.conversation_id == 7
        assert subscription.channel_name == "chan.a"
        assert subscription.token
        assert rooms.is_subscribed(7, "chan.a") is True
        assert rooms.members(7) == frozenset({"chan.a"})

    def test_subscribe_twice_returns_same_subscription(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            first = await rooms.subscribe(7, "chan.a")
            second = await rooms.subscribe(7, "chan.a")
            return first, second

        first, second = run(scenario())

        assert first == second

    def test_group_name(self):
        assert RoomRegistry.group_name(12) == "chat_12"


# =============================================================================
# TestRoomRegistryUnsubscribe
# =============================================================================


class TestRoomRegistryUnsubscribe:
    """Tests for unsubscribe(), leave() and release()."""

    def test_unsubscribe_with_current_token(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            subscription = await rooms.subscribe(7, "chan.a")
            removed = await rooms.unsubscribe(subscription)
            return rooms, removed

        rooms, removed = run(scenario())

        assert removed is True
        assert rooms.is_subscribed(7, "chan.a") is False
        assert rooms.members(7) == frozenset()

    def test_unsubscribe_with_forged_token_is_refused(self):
        """
        Why it matters: only the holder of the subscription may end it.
        """
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            subscription = await rooms.subscribe(7, "chan.a")
            removed = await rooms.unsubscribe(replace(subscription, token="forged"))
            return rooms, removed

        rooms, removed = run(scenario())

        assert removed is False
        assert rooms.is_subscribed(7, "chan.a") is True

    def test_unsubscribe_twice_returns_false(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            subscription = await rooms.subscribe(7, "chan.a")
            await rooms.unsubscribe(subscription)
            return await rooms.unsubscribe(subscription)

        assert run(scenario()) is False

    def test_leave_without_subscription(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            return await rooms.leave(7, "chan.a")

        assert run(scenario()) is False

    def test_release_drops_every_room_of_a_connection(self):
        async def scenario():
            rooms = RoomRegistry(InMemoryChannelLayer())
            await rooms.subscribe(1, "chan.a")
            await rooms.subscribe(2, "chan.a")
            await rooms.subscribe(1, "chan.b")
            released = await rooms.release("chan.a")
            return rooms, released

        rooms, released = run(scenario())

        assert {s.conversation_id for s in released} == {1, 2}
        assert rooms.subscriptions_for("chan.a") == []
        assert rooms.members(1) == frozenset({"chan.b"})
        assert rooms.members(2) == frozenset()


# =============================================================================
# TestRoomRegistryBroadcast
# =============================================================================


class TestRoomRegistryBroadcast:
    """Tests for RoomRegistry.broadcast()."""

    def test_broadcast_reaches_subscribers_only(self):
        async def scenario():
            layer = InMemoryChannelLayer()
            rooms = RoomRegistry(layer)
            inside = await layer.new_channel()
            outside = await layer.new_channel()
            await rooms.subscribe(7, inside)
            await rooms.subscribe(8, outside)

            await rooms.broadcast(7, {"type": "chat.message", "text": "hi"})

            received = await layer.receive(inside)
            quiet = await _nothing_arrives(layer, outside)
            return received, quiet

        received, quiet = run(scenario())

        assert received == {"type": "chat.message", "text": "hi"}
        assert quiet is True

    def test_released_connection_receives_nothing(self):
        async def scenario():
            layer = InMemoryChannelLayer()
            rooms = RoomRegistry(layer)
            channel_name = await layer.new_channel()
            await rooms.subscribe(7, channel_name)
            await rooms.release(channel_name)

            await rooms.broadcast(7, {"type": "chat.message"})
            return await _nothing_arrives(layer, channel_name)

        assert run(scenario()) is True
