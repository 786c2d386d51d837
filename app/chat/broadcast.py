"""
Channel layer fan-out from synchronous code.

Views and Celery tasks run outside the event loop, so they reach live
WebSocket connections through async_to_sync(channel_layer.group_send).
Event "type" values map to handler methods on ChatConsumer
("presence.status" -> presence_status).

Group names:
    presence         every live connection (user_status_change)
    user_<id>        every connection of one user (room eviction)
    chat_<id>        one conversation's room (see chat.rooms)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from chat.constants import PRESENCE_CONFIG

if TYPE_CHECKING:
    from chat.services import PresenceUpdate

logger = logging.getLogger(__name__)


def user_group_name(user_id) -> str:
    """Channel layer group reaching every connection of one user."""
    return f"{PRESENCE_CONFIG.USER_GROUP_PREFIX}_{user_id}"


def presence_event(update: PresenceUpdate) -> dict:
    """Channel layer event carrying a user_status_change."""
    return {"type": "presence.status", **update.to_payload()}


def broadcast_presence(update: PresenceUpdate) -> None:
    """Send a presence change to every live connection."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer configured; presence change not broadcast")
        return
    async_to_sync(channel_layer.group_send)(
        PRESENCE_CONFIG.PRESENCE_GROUP,
        presence_event(update),
    )


def evict_from_room(user_id, conversation_id) -> None:
    """
    Unsubscribe all of a user's connections from a conversation's room.

    Sent after the user leaves the conversation over HTTP, so they stop
    receiving its events immediately.
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer configured; room eviction skipped")
        return
    async_to_sync(channel_layer.group_send)(
        user_group_name(user_id),
        {"type": "room.evict", "conversation_id": conversation_id},
    )
