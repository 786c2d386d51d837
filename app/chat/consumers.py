"""
WebSocket consumer for realtime chat delivery.

One connection per client, with any number of conversations multiplexed
over it. The consumer authenticates the handshake, tracks presence,
subscribes the connection to conversation rooms on demand and turns
client intents into store writes and room broadcasts.

Authentication:
    JWTAuthMiddleware resolves the access token and attaches the user to
    self.scope["user"]. Anonymous handshakes are closed with code 4001
    before being accepted.

Channel Groups:
    presence         joined by every connection, receives user_status_change
    user_<id>        all connections of one user (room eviction)
    chat_<id>        a conversation's room, managed by RoomRegistry

Intents (from client):
    - join_chat:     {"type": "join_chat", "conversation_id": 1}
    - leave_chat:    {"type": "leave_chat", "conversation_id": 1}
    - send_message:  {"type": "send_message", "conversation_id": 1, "content": "Hi", "client_ref": "abc"}
    - typing:        {"type": "typing", "conversation_id": 1}
    - mark_read:     {"type": "mark_read", "conversation_id": 1}
    - heartbeat:     {"type": "heartbeat"}

Events (to client):
    - new_message:        {"type": "new_message", "message": {...}, "client_ref": "abc" | null}
    - user_typing:        {"type": "user_typing", "conversation_id", "user_id", "user_name"}
    - messages_read:      {"type": "messages_read", "conversation_id", "user_id"}
    - user_status_change: {"type": "user_status_change", "user_id", "is_online", "last_seen"}

Failure handling:
    Intents that are unknown, malformed, from non-participants or that
    fail in the store are logged and dropped. The client never receives
    an error event; a sender that does not see its echo within the send
    timeout falls back to the HTTP path.
"""

from __future__ import annotations

import asyncio
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat.broadcast import presence_event, user_group_name
from chat.constants import PRESENCE_CONFIG, REALTIME_CONFIG
from chat.middleware import SUBPROTOCOL_NAME
from chat.rooms import RoomRegistry
from chat.serializers import MessageSerializer
from chat.services import (
    ConversationService,
    MessageService,
    ParticipantService,
    PresenceService,
)

logger = logging.getLogger(__name__)


def parse_conversation_id(value) -> int | None:
    """Coerce a client supplied id to a positive int, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.isdigit():
        return int(value) or None
    return None


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for realtime chat.

    Handles:
        - Handshake authentication and presence tracking
        - Joining/leaving conversation rooms
        - Sending messages with echo to the sender
        - Typing indicators and read receipts

    Intents from one connection are processed strictly in arrival order:
    Channels awaits each handler before reading the next frame.

    Attributes:
        rooms: Room registry shared by every consumer in the process
        user: Authenticated user (None until connect succeeds)
    """

    rooms: RoomRegistry | None = None

    def __init__(self, *args, rooms: RoomRegistry | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.rooms = rooms if rooms is not None else RoomRegistry()
        self.user = None
        self.handlers = {
            "join_chat": self.handle_join_chat,
            "leave_chat": self.handle_leave_chat,
            "send_message": self.handle_send_message,
            "typing": self.handle_typing,
            "mark_read": self.handle_mark_read,
            "heartbeat": self.handle_heartbeat,
        }

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self):
        """
        Handle WebSocket connection.

        Rejects anonymous users, then registers the connection with the
        presence tracker and announces the user's presence to everyone.
        """
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            logger.warning("Rejected unauthenticated WebSocket connection")
            await self.close(code=REALTIME_CONFIG.CLOSE_UNAUTHORIZED)
            return

        self.user = user

        subprotocols = self.scope.get("subprotocols") or []
        if subprotocols and subprotocols[0] == SUBPROTOCOL_NAME:
            await self.accept(subprotocol=SUBPROTOCOL_NAME)
        else:
            await self.accept()

        await self.channel_layer.group_add(PRESENCE_CONFIG.PRESENCE_GROUP, self.channel_name)
        await self.channel_layer.group_add(user_group_name(user.id), self.channel_name)

        result = await database_sync_to_async(PresenceService.connect)(user, self.channel_name)
        if result.success:
            await self.channel_layer.group_send(
                PRESENCE_CONFIG.PRESENCE_GROUP,
                presence_event(result.data),
            )
        else:
            logger.error(f"Presence connect failed for user {user.id}: {result.error}")

        logger.info(f"User {user.id} connected on {self.channel_name}")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection, normal or abnormal.

        Releases every room subscription, leaves the presence and user
        groups and, if this was the user's last connection, announces
        that they went offline.
        """
        if self.user is None:
            return

        await self.rooms.release(self.channel_name)
        await self.channel_layer.group_discard(PRESENCE_CONFIG.PRESENCE_GROUP, self.channel_name)
        await self.channel_layer.group_discard(user_group_name(self.user.id), self.channel_name)

        try:
            result = await database_sync_to_async(PresenceService.disconnect)(
                self.user, self.channel_name
            )
        except Exception:
            # The stale connection sweep will clean up the row
            logger.exception(f"Presence disconnect failed for user {self.user.id}")
            return

        if result.success and result.data.changed:
            await self.channel_layer.group_send(
                PRESENCE_CONFIG.PRESENCE_GROUP,
                presence_event(result.data),
            )

        logger.info(f"User {self.user.id} disconnected (code {close_code})")

    # =========================================================================
    # Intents
    # =========================================================================

    async def receive_json(self, content, **kwargs):
        """
        Dispatch a client intent.

        Anything that cannot be handled is logged and dropped.
        """
        if not isinstance(content, dict):
            logger.debug(f"Dropped non-object frame from user {self.user.id}")
            return

        intent = content.get("type")
        handler = self.handlers.get(intent)
        if handler is None:
            logger.debug(f"Dropped unknown intent {intent!r} from user {self.user.id}")
            return

        try:
            if intent != "heartbeat":
                # Any traffic proves the connection is alive
                await self._touch_connection()
            await handler(content)
        except Exception:
            logger.exception(f"Intent {intent} from user {self.user.id} failed")

    async def handle_join_chat(self, content):
        conversation_id = parse_conversation_id(content.get("conversation_id"))
        if conversation_id is None:
            logger.debug(f"join_chat with malformed id from user {self.user.id}")
            return

        if not await self._is_participant(conversation_id):
            logger.info(f"User {self.user.id} denied join to conversation {conversation_id}")
            return

        await self.rooms.subscribe(conversation_id, self.channel_name)

    async def handle_leave_chat(self, content):
        conversation_id = parse_conversation_id(content.get("conversation_id"))
        if conversation_id is None:
            return
        await self.rooms.leave(conversation_id, self.channel_name)

    async def handle_send_message(self, content):
        """
        Store a message and broadcast it to the room.

        The store write is bounded by SEND_TIMEOUT_SECONDS. On success the
        sender is subscribed first so the echo carrying client_ref reaches
        this connection.
        """
        conversation_id = parse_conversation_id(content.get("conversation_id"))
        if conversation_id is None:
            logger.debug(f"send_message with malformed id from user {self.user.id}")
            return

        validation = MessageService.validate_content(content.get("content"))
        if not validation:
            logger.debug(
                f"Dropped send_message from user {self.user.id}: {validation.error_code}"
            )
            return

        client_ref = content.get("client_ref")
        if client_ref is not None and not isinstance(client_ref, str):
            client_ref = str(client_ref)

        try:
            message_data = await asyncio.wait_for(
                self._store_message(conversation_id, validation.data),
                timeout=REALTIME_CONFIG.SEND_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"send_message from user {self.user.id} to conversation "
                f"{conversation_id} timed out"
            )
            return

        if message_data is None:
            return

        await self.rooms.subscribe(conversation_id, self.channel_name)
        await self.rooms.broadcast(
            conversation_id,
            {
                "type": "chat.message",
                "message": message_data,
                "client_ref": client_ref,
                "origin_channel": self.channel_name,
            },
        )

    async def handle_typing(self, content):
        conversation_id = parse_conversation_id(content.get("conversation_id"))
        if conversation_id is None or not await self._is_participant(conversation_id):
            return

        await self.rooms.broadcast(
            conversation_id,
            {
                "type": "chat.typing",
                "conversation_id": conversation_id,
                "user_id": self.user.id,
                "user_name": self.user.get_display_name(),
                "origin_channel": self.channel_name,
            },
        )

    async def handle_mark_read(self, content):
        conversation_id = parse_conversation_id(content.get("conversation_id"))
        if conversation_id is None:
            return

        if not await self._mark_read(conversation_id):
            return

        await self.rooms.broadcast(
            conversation_id,
            {
                "type": "chat.read",
                "conversation_id": conversation_id,
                "user_id": self.user.id,
                "origin_channel": self.channel_name,
            },
        )

    async def handle_heartbeat(self, content):
        await self._touch_connection()

    async def _touch_connection(self):
        alive = await database_sync_to_async(PresenceService.heartbeat)(self.channel_name)
        if not alive:
            # Swept as stale while still open; register again
            result = await database_sync_to_async(PresenceService.connect)(
                self.user, self.channel_name
            )
            if result.success:
                await self.channel_layer.group_send(
                    PRESENCE_CONFIG.PRESENCE_GROUP,
                    presence_event(result.data),
                )

    # =========================================================================
    # Channel layer events
    # =========================================================================

    async def chat_message(self, event):
        """
        Deliver a new message.

        Only the originating connection gets the client_ref back; the
        sender's other devices and other participants see null.
        """
        is_origin = event.get("origin_channel") == self.channel_name
        await self.send_json(
            {
                "type": "new_message",
                "message": event["message"],
                "client_ref": event.get("client_ref") if is_origin else None,
            }
        )

    async def chat_typing(self, event):
        if event.get("origin_channel") == self.channel_name:
            return

        await self.send_json(
            {
                "type": "user_typing",
                "conversation_id": event["conversation_id"],
                "user_id": event["user_id"],
                "user_name": event["user_name"],
            }
        )

    async def chat_read(self, event):
        if event.get("origin_channel") == self.channel_name:
            return

        await self.send_json(
            {
                "type": "messages_read",
                "conversation_id": event["conversation_id"],
                "user_id": event["user_id"],
            }
        )

    async def presence_status(self, event):
        await self.send_json(
            {
                "type": "user_status_change",
                "user_id": event["user_id"],
                "is_online": event["is_online"],
                "last_seen": event["last_seen"],
            }
        )

    async def room_evict(self, event):
        """The user left the conversation over HTTP; stop its events here."""
        await self.rooms.leave(event["conversation_id"], self.channel_name)

    # =========================================================================
    # Store access
    # =========================================================================

    @database_sync_to_async
    def _is_participant(self, conversation_id: int) -> bool:
        return ParticipantService.is_participant(conversation_id, self.user.id)

    @database_sync_to_async
    def _store_message(self, conversation_id: int, content: str) -> dict | None:
        """
        Append a message via MessageService.

        Returns the serialized message, or None if the append was refused
        or failed.
        """
        conversation = ConversationService.get_conversation(conversation_id)
        if conversation is None:
            logger.info(
                f"User {self.user.id} sent to missing conversation {conversation_id}"
            )
            return None

        result = MessageService.send_message(
            conversation=conversation,
            sender=self.user,
            content=content,
        )
        if not result.success:
            logger.info(
                f"send_message from user {self.user.id} to conversation "
                f"{conversation_id} refused: {result.error_code}"
            )
            return None

        return MessageSerializer(result.data).data

    @database_sync_to_async
    def _mark_read(self, conversation_id: int) -> bool:
        conversation = ConversationService.get_conversation(conversation_id)
        if conversation is None:
            return False

        result = MessageService.mark_as_read(conversation=conversation, user=self.user)
        if not result.success:
            logger.info(
                f"mark_read from user {self.user.id} on conversation "
                f"{conversation_id} refused: {result.error_code}"
            )
            return False
        return True
