"""
Chat session: one signed-in client's state plus the I/O that feeds it.

ChatSession owns the reduced ChatState, the HTTP API and an optional
realtime transport. There is no module level state; create one session
per signed-in user and pass it to whatever needs it.

Delivery rules:
    - send() goes over the realtime channel first, tagged with a
      client_ref, and waits up to SEND_TIMEOUT_SECONDS for the server's
      echo. Without an echo (channel down, store failure, timeout) it
      sends again over HTTP and inserts the returned message locally.
      A late echo of the same message is dropped by id.
    - Messages from others arriving in the open conversation are marked
      read immediately.
    - A typing indicator disappears TYPING_EXPIRY_SECONDS after the last
      user_typing for that author.
    - A new_message for an unknown conversation refreshes the list.
    - While run() is consuming events a heartbeat intent goes out every
      heartbeat_interval seconds so the server keeps the connection
      (and the user's presence) alive.

Usage:
    session = ChatSession(api, user_id=me["id"], transport=transport)
    await session.load()
    await session.open(conversation_id)
    await session.send("hello")

    # Feed realtime events until the channel closes
    await session.run()
    # After reconnecting
    await session.resync()
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import TYPE_CHECKING, Any

from chat_client.errors import TransportFailure, ValidationError
from chat_client.state import (
    TYPING_EXPIRY_SECONDS,
    BulkLoad,
    ChatState,
    ConversationLeft,
    ConversationOpened,
    ConversationView,
    MessagesRead,
    MessageView,
    NewMessage,
    PresenceChanged,
    Typing,
    TypingCleared,
    parse_datetime,
    reduce,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from chat_client.protocols import ChatApi, RealtimeTransport

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 10.0
TYPING_THROTTLE_SECONDS = 2.0
HEARTBEAT_INTERVAL_SECONDS = 30.0
MAX_CONTENT_LENGTH = 10000


class ChatSession:
    """
    Reconciled client view of conversations and the open conversation.

    Attributes:
        state: Current ChatState (replaced on every event)
        api: HTTP API client
        transport: Realtime channel, None when running HTTP only
    """

    def __init__(
        self,
        api: ChatApi,
        user_id: int,
        transport: RealtimeTransport | None = None,
        send_timeout: float = SEND_TIMEOUT_SECONDS,
        typing_throttle: float = TYPING_THROTTLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SECONDS,
    ):
        self.api = api
        self.transport = transport
        self.state = ChatState(user_id=user_id)
        self.send_timeout = send_timeout
        self.typing_throttle = typing_throttle
        self.heartbeat_interval = heartbeat_interval
        self._clock = clock
        self._pending: dict[str, asyncio.Future] = {}
        self._typing_timers: dict[tuple[int, int], asyncio.TimerHandle] = {}
        self._last_typing_sent: float | None = None

    def apply(self, event) -> ChatState:
        self.state = reduce(self.state, event)
        return self.state

    # =========================================================================
    # Conversations
    # =========================================================================

    async def load(self) -> ChatState:
        """Fetch the conversation list."""
        data = await asyncio.to_thread(self.api.list_conversations)
        return self.apply(
            BulkLoad(tuple(ConversationView.from_payload(item) for item in data))
        )

    async def open(self, conversation_id: int) -> ConversationView:
        """Fetch a conversation, make it active, join its room and mark it read."""
        data = await asyncio.to_thread(self.api.get_conversation, conversation_id)
        conversation = ConversationView.from_payload(data)
        self.apply(ConversationOpened(conversation))

        await self._send_intent({"type": "join_chat", "conversation_id": conversation_id})
        await self.mark_read(conversation_id)
        return self.state.get(conversation_id)

    async def create_conversation(
        self,
        participant_ids: list[int],
        name: str = "",
        is_group: bool | None = None,
    ) -> ConversationView:
        data = await asyncio.to_thread(
            self.api.create_conversation, participant_ids, name, is_group
        )
        conversation = ConversationView.from_payload(data)
        self.apply(ConversationOpened(conversation))
        await self._send_intent({"type": "join_chat", "conversation_id": conversation.id})
        return self.state.get(conversation.id)

    async def leave(self, conversation_id: int) -> None:
        await asyncio.to_thread(self.api.leave, conversation_id)
        self.apply(ConversationLeft(conversation_id))

    async def mark_read(self, conversation_id: int) -> None:
        """
        Mark a conversation read.

        The realtime intent also notifies the other participants; the HTTP
        fallback only updates the store.
        """
        sent = await self._send_intent({"type": "mark_read", "conversation_id": conversation_id})
        if not sent:
            await asyncio.to_thread(self.api.mark_read, conversation_id)
        self.apply(MessagesRead(conversation_id=conversation_id, reader_id=self.state.user_id))

    # =========================================================================
    # Sending
    # =========================================================================

    @staticmethod
    def validate_content(content) -> str:
        """Trim and check content before anything is sent."""
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content cannot be empty", error_code="EMPTY_CONTENT")
        content = content.strip()
        if len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message content exceeds {MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        return content

    async def send(self, content: str) -> MessageView:
        """
        Send a message to the open conversation.

        Raises:
            ValidationError: No open conversation, or invalid content
            ChatClientError: The HTTP fallback failed too
        """
        conversation_id = self.state.active_id
        if conversation_id is None:
            raise ValidationError("No conversation is open", error_code="NO_ACTIVE_CONVERSATION")
        content = self.validate_content(content)

        if self.transport is not None:
            message = await self._send_realtime(conversation_id, content)
            if message is not None:
                return message

        data = await asyncio.to_thread(self.api.send_message, conversation_id, content)
        message = MessageView.from_payload(data)
        self.apply(NewMessage(message))
        return message

    async def _send_realtime(self, conversation_id: int, content: str) -> MessageView | None:
        client_ref = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[client_ref] = future
        try:
            await self.transport.send(
                {
                    "type": "send_message",
                    "conversation_id": conversation_id,
                    "content": content,
                    "client_ref": client_ref,
                }
            )
            return await asyncio.wait_for(future, timeout=self.send_timeout)
        except TransportFailure as e:
            logger.info(f"Realtime send unavailable, using HTTP: {e}")
        except asyncio.TimeoutError:
            logger.warning(
                f"No echo for message to conversation {conversation_id} "
                f"within {self.send_timeout}s, using HTTP"
            )
        finally:
            self._pending.pop(client_ref, None)
        return None

    async def notify_typing(self) -> bool:
        """
        Tell the open conversation the user is typing.

        Calls closer together than typing_throttle are suppressed.
        Returns True if an intent was sent.
        """
        conversation_id = self.state.active_id
        if conversation_id is None or self.transport is None:
            return False

        now = self._clock()
        if self._last_typing_sent is not None and now - self._last_typing_sent < self.typing_throttle:
            return False

        sent = await self._send_intent({"type": "typing", "conversation_id": conversation_id})
        if sent:
            self._last_typing_sent = now
        return sent

    async def _send_intent(self, intent: dict[str, Any]) -> bool:
        if self.transport is None:
            return False
        try:
            await self.transport.send(intent)
        except TransportFailure as e:
            logger.info(f"Could not send {intent['type']}: {e}")
            return False
        return True

    # =========================================================================
    # Realtime events
    # =========================================================================

    async def handle_event(self, raw: dict[str, Any]) -> None:
        """Fold one server event into the state."""
        event_type = raw.get("type")

        if event_type == "new_message":
            await self._on_new_message(raw)
        elif event_type == "user_typing":
            self._on_typing(raw)
        elif event_type == "messages_read":
            self.apply(
                MessagesRead(conversation_id=raw["conversation_id"], reader_id=raw["user_id"])
            )
        elif event_type == "user_status_change":
            self.apply(
                PresenceChanged(
                    user_id=raw["user_id"],
                    is_online=bool(raw["is_online"]),
                    last_seen=parse_datetime(raw.get("last_seen")),
                )
            )
        else:
            logger.debug(f"Ignored server event {event_type!r}")

    async def _on_new_message(self, raw: dict[str, Any]) -> None:
        message = MessageView.from_payload(raw["message"])

        future = self._pending.get(raw.get("client_ref") or "")
        if future is not None and not future.done():
            future.set_result(message)

        if self.state.get(message.conversation_id) is None:
            await self.load()

        self.apply(NewMessage(message))

        if (
            message.conversation_id == self.state.active_id
            and message.sender_id != self.state.user_id
        ):
            await self.mark_read(message.conversation_id)

    def _on_typing(self, raw: dict[str, Any]) -> None:
        conversation_id, user_id = raw["conversation_id"], raw["user_id"]
        if user_id == self.state.user_id:
            return

        self.apply(
            Typing(
                conversation_id=conversation_id,
                user_id=user_id,
                user_name=raw.get("user_name") or "",
                at=self._clock(),
            )
        )

        key = (conversation_id, user_id)
        timer = self._typing_timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._typing_timers[key] = asyncio.get_running_loop().call_later(
            TYPING_EXPIRY_SECONDS, self._expire_typing, key
        )

    def _expire_typing(self, key: tuple[int, int]) -> None:
        self._typing_timers.pop(key, None)
        self.apply(TypingCleared(*key))

    async def run(self) -> None:
        """Consume realtime events until the transport closes."""
        if self.transport is None:
            return
        keepalive = asyncio.create_task(self._keepalive())
        try:
            async for raw in self.transport.events():
                try:
                    await self.handle_event(raw)
                except (KeyError, TypeError, ValueError):
                    logger.exception(f"Dropped malformed server event {raw.get('type')!r}")
        except TransportFailure as e:
            logger.info(f"Realtime channel closed: {e}")
        finally:
            keepalive.cancel()
            try:
                await keepalive
            except asyncio.CancelledError:
                pass

    async def _keepalive(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            await self._send_intent({"type": "heartbeat"})

    async def resync(self) -> None:
        """
        Recover after a reconnect.

        Nothing is queued for a disconnected client, so the list and the
        open conversation are fetched again and its room rejoined.
        """
        await self.load()
        if self.state.active_id is not None:
            await self.open(self.state.active_id)

    def close(self) -> None:
        for timer in self._typing_timers.values():
            timer.cancel()
        self._typing_timers.clear()
        for future in self._pending.values():
            future.cancel()
        self._pending.clear()
