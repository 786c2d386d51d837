"""
Tests for the ChatState reducer.

reduce() is pure, so every test builds a state, folds events into it and
checks the resulting value.
"""

from datetime import datetime, timezone

import pytest

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
    TypingExpired,
    active_conversation,
    parse_datetime,
    reduce,
    typing_names,
)
from chat_client.tests.payloads import conversation_payload, message_payload

ME = 1


def conversation(conversation_id=7, **kwargs) -> ConversationView:
    return ConversationView.from_payload(conversation_payload(conversation_id, **kwargs))


def message(message_id, **kwargs) -> MessageView:
    return MessageView.from_payload(message_payload(message_id, **kwargs))


def loaded(*conversations: ConversationView, active_id=None) -> ChatState:
    state = reduce(ChatState(user_id=ME), BulkLoad(tuple(conversations)))
    if active_id is not None:
        state = reduce(state, ConversationOpened(state.get(active_id)))
    return state


# =============================================================================
# Parsing
# =============================================================================


class TestPayloadParsing:
    """Tests for the from_payload constructors."""

    def test_parse_datetime_accepts_zulu(self):
        assert parse_datetime("2024-01-01T12:00:00Z") == datetime(
            2024, 1, 1, 12, tzinfo=timezone.utc
        )

    def test_parse_datetime_passes_none(self):
        assert parse_datetime(None) is None

    def test_conversation_messages_sorted_newest_first(self):
        view = conversation(
            messages=(
                message_payload(1, created_at="2024-01-01T10:00:00Z"),
                message_payload(2, created_at="2024-01-01T11:00:00Z"),
            )
        )

        assert [m.id for m in view.messages] == [2, 1]

    def test_message_without_sender(self):
        payload = message_payload(3)
        payload["sender"] = None

        view = MessageView.from_payload(payload)

        assert view.sender_id is None
        assert view.sender_name == ""


# =============================================================================
# BulkLoad / ConversationOpened
# =============================================================================


class TestBulkLoad:
    """Tests for BulkLoad."""

    def test_orders_by_last_activity(self):
        state = loaded(
            conversation(1, last_message_at="2024-01-01T10:00:00Z"),
            conversation(2, last_message_at="2024-01-02T10:00:00Z"),
            conversation(3, created_at="2024-01-01T12:00:00Z"),
        )

        assert [c.id for c in state.conversations] == [2, 3, 1]

    def test_keeps_cached_messages(self):
        state = loaded(conversation(7, messages=(message_payload(1),)))
        state = reduce(state, NewMessage(message(2, created_at="2024-01-01T12:05:00Z")))

        state = reduce(state, BulkLoad((conversation(7),)))

        assert [m.id for m in state.get(7).messages] == [2, 1]

    def test_drops_active_conversation_that_disappeared(self):
        state = loaded(conversation(7), conversation(8), active_id=7)

        state = reduce(state, BulkLoad((conversation(8),)))

        assert state.active_id is None
        assert state.get(7) is None


class TestConversationOpened:
    """Tests for ConversationOpened."""

    def test_sets_active(self):
        state = loaded(conversation(7), active_id=7)

        assert state.active_id == 7
        assert active_conversation(state).id == 7

    def test_merges_fetched_messages_without_duplicates(self):
        state = loaded(conversation(7, messages=(message_payload(1), message_payload(2))))

        opened = conversation(
            7, messages=(message_payload(2, is_read=True), message_payload(3))
        )
        state = reduce(state, ConversationOpened(opened))

        messages = state.get(7).messages
        assert sorted(m.id for m in messages) == [1, 2, 3]
        assert next(m for m in messages if m.id == 2).is_read is True

    def test_opening_unknown_conversation_adds_it(self):
        state = loaded()

        state = reduce(state, ConversationOpened(conversation(9)))

        assert state.get(9) is not None
        assert state.active_id == 9


# =============================================================================
# NewMessage
# =============================================================================


class TestNewMessage:
    """Tests for NewMessage."""

    def test_inserts_and_moves_conversation_to_top(self):
        state = loaded(
            conversation(7, last_message_at="2024-01-01T09:00:00Z"),
            conversation(8, last_message_at="2024-01-01T10:00:00Z"),
        )

        state = reduce(state, NewMessage(message(1, conversation_id=7)))

        assert state.conversations[0].id == 7
        assert state.get(7).messages[0].id == 1

    def test_duplicate_id_is_ignored(self):
        state = loaded(conversation(7))
        state = reduce(state, NewMessage(message(1)))

        again = reduce(state, NewMessage(message(1)))

        assert again is state

    def test_unknown_conversation_is_ignored(self):
        state = loaded(conversation(7))

        assert reduce(state, NewMessage(message(1, conversation_id=99))) is state

    def test_unread_counts_only_others_in_background(self):
        state = loaded(conversation(7), conversation(8), active_id=8)

        state = reduce(state, NewMessage(message(1, conversation_id=7, sender_id=2)))
        state = reduce(state, NewMessage(message(2, conversation_id=7, sender_id=ME)))
        state = reduce(state, NewMessage(message(3, conversation_id=8, sender_id=2)))

        assert state.get(7).unread_count == 1
        assert state.get(8).unread_count == 0

    def test_ordering_by_created_at_then_sequence(self):
        state = loaded(conversation(7))

        for message_id, sequence in ((5, 2), (4, 1), (6, 3)):
            state = reduce(
                state,
                NewMessage(message(message_id, sequence=sequence, created_at="2024-01-01T12:00:00Z")),
            )

        assert [m.id for m in state.get(7).messages] == [6, 5, 4]

    def test_older_message_does_not_move_last_message_at_back(self):
        state = loaded(conversation(7, last_message_at="2024-01-02T00:00:00Z"))

        state = reduce(state, NewMessage(message(1, created_at="2024-01-01T00:00:00Z")))

        assert state.get(7).last_message_at == parse_datetime("2024-01-02T00:00:00Z")


# =============================================================================
# Typing
# =============================================================================


class TestTyping:
    """Tests for Typing, TypingExpired and TypingCleared."""

    def test_shows_indicator(self):
        state = loaded(conversation(7))

        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=100.0))

        assert typing_names(state, 7) == ("Bob",)
        assert state.typing[0].expires_at == 100.0 + TYPING_EXPIRY_SECONDS

    def test_own_typing_is_never_shown(self):
        state = loaded(conversation(7))

        assert reduce(state, Typing(conversation_id=7, user_id=ME, user_name="Me", at=0.0)) is state

    def test_repeat_refreshes_single_entry(self):
        state = loaded(conversation(7))
        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=100.0))

        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=102.0))

        assert len(state.typing) == 1
        assert state.typing[0].expires_at == 102.0 + TYPING_EXPIRY_SECONDS

    @pytest.mark.parametrize(
        "now,expected",
        [
            (100.0 + TYPING_EXPIRY_SECONDS - 0.1, ("Bob",)),
            (100.0 + TYPING_EXPIRY_SECONDS, ()),
        ],
    )
    def test_expiry(self, now, expected):
        state = loaded(conversation(7))
        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=100.0))

        state = reduce(state, TypingExpired(now=now))

        assert typing_names(state, 7) == expected

    def test_cleared_by_key_regardless_of_expiry(self):
        state = loaded(conversation(7), conversation(8))
        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=100.0))
        state = reduce(state, Typing(conversation_id=8, user_id=2, user_name="Bob", at=100.0))
        state = reduce(state, Typing(conversation_id=7, user_id=3, user_name="Carol", at=100.0))

        state = reduce(state, TypingCleared(conversation_id=7, user_id=2))

        assert typing_names(state, 7) == ("Carol",)
        assert typing_names(state, 8) == ("Bob",)

    def test_clearing_absent_indicator_is_a_no_op(self):
        state = loaded(conversation(7))

        assert reduce(state, TypingCleared(conversation_id=7, user_id=2)) is state


# =============================================================================
# MessagesRead / PresenceChanged / ConversationLeft
# =============================================================================


class TestMessagesRead:
    """Tests for MessagesRead."""

    def test_other_reader_marks_my_messages_read(self):
        state = loaded(
            conversation(
                7,
                messages=(
                    message_payload(1, sender_id=ME),
                    message_payload(2, sender_id=2),
                ),
                unread_count=1,
            )
        )

        state = reduce(state, MessagesRead(conversation_id=7, reader_id=2))

        by_id = {m.id: m for m in state.get(7).messages}
        assert by_id[1].is_read is True
        assert by_id[2].is_read is False
        assert state.get(7).unread_count == 1

    def test_own_read_clears_unread_count(self):
        state = loaded(conversation(7, messages=(message_payload(2, sender_id=2),), unread_count=1))

        state = reduce(state, MessagesRead(conversation_id=7, reader_id=ME))

        assert state.get(7).unread_count == 0
        assert state.get(7).messages[0].is_read is True


class TestPresenceChanged:
    def test_updates_participant_everywhere(self):
        state = loaded(conversation(7, participant_ids=(1, 2)), conversation(8, participant_ids=(1, 2, 3)))
        seen = parse_datetime("2024-01-01T12:00:00Z")

        state = reduce(state, PresenceChanged(user_id=2, is_online=False, last_seen=seen))
        state = reduce(state, PresenceChanged(user_id=3, is_online=True))

        for conversation_id in (7, 8):
            bob = next(p for p in state.get(conversation_id).participants if p.id == 2)
            assert bob.is_online is False
            assert bob.last_seen == seen
        carol = next(p for p in state.get(8).participants if p.id == 3)
        assert carol.is_online is True


class TestConversationLeft:
    def test_removes_conversation_and_clears_active(self):
        state = loaded(conversation(7), conversation(8), active_id=7)
        state = reduce(state, Typing(conversation_id=7, user_id=2, user_name="Bob", at=0.0))

        state = reduce(state, ConversationLeft(7))

        assert state.get(7) is None
        assert state.active_id is None
        assert state.typing == ()


def test_unknown_event_leaves_state_unchanged():
    state = loaded(conversation(7))

    assert reduce(state, object()) is state
