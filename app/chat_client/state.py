"""
Client chat state and its reducer.

The state is one immutable value: the conversation list (most recent
activity first), a message cache per conversation (newest first), the
open conversation and the typing indicators currently shown. Every input
the client sees, whether a bulk fetch, a realtime event or a fallback
response, is expressed as an event and folded in with reduce().

Events:
    BulkLoad            replace the conversation list
    ConversationOpened  make a conversation active and merge its messages
    NewMessage          insert one message (deduped by id)
    Typing              show a typing indicator until expires_at
    TypingExpired       drop indicators whose expiry has passed
    TypingCleared       drop one author's indicator in a conversation
    MessagesRead        another participant read the conversation
    PresenceChanged     a user went online/offline
    ConversationLeft    the user left a conversation

Usage:
    state = ChatState(user_id=me.id)
    state = reduce(state, BulkLoad(conversations))
    state = reduce(state, NewMessage(message))

    for name in typing_names(state, conversation_id):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

TYPING_EXPIRY_SECONDS = 3.0

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as sent by the server."""
    if value is None or isinstance(value, datetime):
        return value
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


# =============================================================================
# Views
# =============================================================================


@dataclass(frozen=True)
class ParticipantView:
    id: int
    display_name: str
    avatar_url: str = ""
    is_online: bool = False
    last_seen: datetime | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ParticipantView:
        return cls(
            id=data["id"],
            display_name=data.get("display_name") or "",
            avatar_url=data.get("avatar_url") or "",
            is_online=bool(data.get("is_online")),
            last_seen=parse_datetime(data.get("last_seen")),
        )


@dataclass(frozen=True)
class MessageView:
    """
    A message as the client displays it.

    Ordering key is (created_at, sequence, id); id is the dedupe key.
    """

    id: int
    conversation_id: int
    sender_id: int | None
    sender_name: str
    content: str
    sequence: int
    is_read: bool
    created_at: datetime

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> MessageView:
        sender = data.get("sender") or {}
        return cls(
            id=data["id"],
            conversation_id=data["conversation_id"],
            sender_id=sender.get("id"),
            sender_name=sender.get("display_name") or "",
            content=data["content"],
            sequence=data.get("sequence") or 0,
            is_read=bool(data.get("is_read")),
            created_at=parse_datetime(data["created_at"]),
        )

    @property
    def sort_key(self) -> tuple:
        return (self.created_at, self.sequence, self.id)


@dataclass(frozen=True)
class ConversationView:
    id: int
    is_group: bool
    name: str = ""
    participants: tuple[ParticipantView, ...] = ()
    last_message_at: datetime | None = None
    unread_count: int = 0
    created_at: datetime | None = None
    # Newest first
    messages: tuple[MessageView, ...] = ()

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ConversationView:
        messages = tuple(MessageView.from_payload(m) for m in data.get("messages") or ())
        return cls(
            id=data["id"],
            is_group=bool(data.get("is_group")),
            name=data.get("name") or "",
            participants=tuple(
                ParticipantView.from_payload(p) for p in data.get("participants") or ()
            ),
            last_message_at=parse_datetime(data.get("last_message_at")),
            unread_count=data.get("unread_count") or 0,
            created_at=parse_datetime(data.get("created_at")),
            messages=_sorted_messages(messages),
        )

    @property
    def activity_at(self) -> datetime:
        return self.last_message_at or self.created_at or _EPOCH


@dataclass(frozen=True)
class TypingEntry:
    conversation_id: int
    user_id: int
    user_name: str
    expires_at: float


@dataclass(frozen=True)
class ChatState:
    """
    Everything one client shows.

    Attributes:
        user_id: The signed-in user (own typing is never shown)
        conversations: Most recent activity first
        active_id: Open conversation, if any
        typing: Indicators currently displayed
    """

    user_id: int
    conversations: tuple[ConversationView, ...] = ()
    active_id: int | None = None
    typing: tuple[TypingEntry, ...] = ()

    def get(self, conversation_id: int) -> ConversationView | None:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class BulkLoad:
    conversations: tuple[ConversationView, ...]


@dataclass(frozen=True)
class ConversationOpened:
    conversation: ConversationView


@dataclass(frozen=True)
class NewMessage:
    message: MessageView


@dataclass(frozen=True)
class Typing:
    conversation_id: int
    user_id: int
    user_name: str
    at: float


@dataclass(frozen=True)
class TypingExpired:
    now: float


@dataclass(frozen=True)
class TypingCleared:
    conversation_id: int
    user_id: int


@dataclass(frozen=True)
class MessagesRead:
    conversation_id: int
    reader_id: int


@dataclass(frozen=True)
class PresenceChanged:
    user_id: int
    is_online: bool
    last_seen: datetime | None = None


@dataclass(frozen=True)
class ConversationLeft:
    conversation_id: int


# =============================================================================
# Reducer
# =============================================================================


def _sorted_messages(messages) -> tuple[MessageView, ...]:
    return tuple(sorted(messages, key=lambda m: m.sort_key, reverse=True))


def _sorted_conversations(conversations) -> tuple[ConversationView, ...]:
    return tuple(
        sorted(conversations, key=lambda c: (c.activity_at, c.id), reverse=True)
    )


def _merge_messages(
    cached: tuple[MessageView, ...], fetched: tuple[MessageView, ...]
) -> tuple[MessageView, ...]:
    by_id = {m.id: m for m in cached}
    # Fetched copies are fresher (read flags)
    by_id.update((m.id, m) for m in fetched)
    return _sorted_messages(by_id.values())


def _replace_conversation(state: ChatState, updated: ConversationView) -> ChatState:
    conversations = [c for c in state.conversations if c.id != updated.id]
    conversations.append(updated)
    return replace(state, conversations=_sorted_conversations(conversations))


def _bulk_load(state: ChatState, event: BulkLoad) -> ChatState:
    conversations = []
    for incoming in event.conversations:
        cached = state.get(incoming.id)
        if cached is not None:
            incoming = replace(
                incoming, messages=_merge_messages(cached.messages, incoming.messages)
            )
        conversations.append(incoming)

    ids = {c.id for c in conversations}
    return replace(
        state,
        conversations=_sorted_conversations(conversations),
        active_id=state.active_id if state.active_id in ids else None,
        typing=tuple(t for t in state.typing if t.conversation_id in ids),
    )


def _conversation_opened(state: ChatState, event: ConversationOpened) -> ChatState:
    opened = event.conversation
    cached = state.get(opened.id)
    if cached is not None:
        opened = replace(opened, messages=_merge_messages(cached.messages, opened.messages))
    return replace(_replace_conversation(state, opened), active_id=opened.id)


def _new_message(state: ChatState, event: NewMessage) -> ChatState:
    message = event.message
    conversation = state.get(message.conversation_id)
    if conversation is None:
        return state
    if any(m.id == message.id for m in conversation.messages):
        return state

    last_message_at = conversation.last_message_at
    if last_message_at is None or message.created_at > last_message_at:
        last_message_at = message.created_at

    unread_count = conversation.unread_count
    if message.sender_id != state.user_id and state.active_id != conversation.id:
        unread_count += 1

    updated = replace(
        conversation,
        messages=_sorted_messages(conversation.messages + (message,)),
        last_message_at=last_message_at,
        unread_count=unread_count,
    )
    return _replace_conversation(state, updated)


def _typing(state: ChatState, event: Typing) -> ChatState:
    if event.user_id == state.user_id:
        return state
    entries = [
        t
        for t in state.typing
        if not (t.conversation_id == event.conversation_id and t.user_id == event.user_id)
    ]
    entries.append(
        TypingEntry(
            conversation_id=event.conversation_id,
            user_id=event.user_id,
            user_name=event.user_name,
            expires_at=event.at + TYPING_EXPIRY_SECONDS,
        )
    )
    return replace(state, typing=tuple(entries))


def _typing_expired(state: ChatState, event: TypingExpired) -> ChatState:
    remaining = tuple(t for t in state.typing if t.expires_at > event.now)
    if len(remaining) == len(state.typing):
        return state
    return replace(state, typing=remaining)


def _typing_cleared(state: ChatState, event: TypingCleared) -> ChatState:
    remaining = tuple(
        t
        for t in state.typing
        if not (t.conversation_id == event.conversation_id and t.user_id == event.user_id)
    )
    if len(remaining) == len(state.typing):
        return state
    return replace(state, typing=remaining)


def _messages_read(state: ChatState, event: MessagesRead) -> ChatState:
    conversation = state.get(event.conversation_id)
    if conversation is None:
        return state

    messages = tuple(
        replace(m, is_read=True) if m.sender_id != event.reader_id and not m.is_read else m
        for m in conversation.messages
    )
    updated = replace(conversation, messages=messages)
    if event.reader_id == state.user_id:
        updated = replace(updated, unread_count=0)
    return _replace_conversation(state, updated)


def _presence_changed(state: ChatState, event: PresenceChanged) -> ChatState:
    conversations = []
    for conversation in state.conversations:
        if any(p.id == event.user_id for p in conversation.participants):
            conversation = replace(
                conversation,
                participants=tuple(
                    replace(p, is_online=event.is_online, last_seen=event.last_seen)
                    if p.id == event.user_id
                    else p
                    for p in conversation.participants
                ),
            )
        conversations.append(conversation)
    return replace(state, conversations=tuple(conversations))


def _conversation_left(state: ChatState, event: ConversationLeft) -> ChatState:
    return replace(
        state,
        conversations=tuple(c for c in state.conversations if c.id != event.conversation_id),
        active_id=None if state.active_id == event.conversation_id else state.active_id,
        typing=tuple(t for t in state.typing if t.conversation_id != event.conversation_id),
    )


_REDUCERS = {
    BulkLoad: _bulk_load,
    ConversationOpened: _conversation_opened,
    NewMessage: _new_message,
    Typing: _typing,
    TypingExpired: _typing_expired,
    TypingCleared: _typing_cleared,
    MessagesRead: _messages_read,
    PresenceChanged: _presence_changed,
    ConversationLeft: _conversation_left,
}


def reduce(state: ChatState, event) -> ChatState:
    """
    Fold one event into the state.

    Total: events of an unknown type leave the state unchanged.
    """
    handler = _REDUCERS.get(type(event))
    if handler is None:
        return state
    return handler(state, event)


# =============================================================================
# Queries
# =============================================================================


def active_conversation(state: ChatState) -> ConversationView | None:
    if state.active_id is None:
        return None
    return state.get(state.active_id)


def typing_names(state: ChatState, conversation_id: int) -> tuple[str, ...]:
    """Names to show as typing in a conversation, most recently refreshed last."""
    return tuple(t.user_name for t in state.typing if t.conversation_id == conversation_id)
