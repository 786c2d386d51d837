"""
Tests for chat service layer business logic.

This module tests:
- ConversationService: Conversation lifecycle (create, lookup, list)
- ParticipantService: Membership (add, leave, membership checks)
- MessageService: Message operations (validate, send, list, mark as read)

Test Organization:
    - Each service method has its own test class
    - Each test validates ONE specific behavior
    - Tests use descriptive names following: test_<scenario>_<expected_outcome>

Testing Philosophy:
    Tests focus on observable behavior, not implementation details:
    - ServiceResult success/failure states
    - Database state changes
    - Error codes for specific failure modes
"""

from datetime import timedelta

from django.utils import timezone
from freezegun import freeze_time

from authentication.tests.factories import UserFactory
from chat.constants import MESSAGE_CONFIG
from chat.models import (
    Conversation,
    ConversationType,
    DirectConversationPair,
    Message,
    Participant,
)
from chat.services import ConversationService, MessageService, ParticipantService
from chat.tests.factories import (
    DirectConversationFactory,
    GroupConversationFactory,
    MessageFactory,
)


# =============================================================================
# TestConversationServiceCreateConversation
# =============================================================================


class TestConversationServiceCreateConversation:
    """
    Tests for ConversationService.create_conversation().

    Verifies:
    - Direct vs group decision from ids, name and is_group
    - Direct conversations are unique per pair
    - Invalid participant lists are refused
    """

    def test_two_people_without_name_create_direct(self, alice, bob):
        """
        Why it matters: this is the primary happy path for starting a DM.
        """
        result = ConversationService.create_conversation(alice, [bob.id])

        assert result.success is True
        conversation, created = result.data
        assert created is True
        assert conversation.conversation_type == ConversationType.DIRECT
        assert conversation.participant_count == 2
        assert DirectConversationPair.objects.filter(conversation=conversation).exists()

    def test_existing_direct_is_returned_not_duplicated(self, alice, bob):
        """
        Given a direct conversation between alice and bob
        When bob starts one with alice
        Then the existing conversation comes back with created=False
        """
        first, _ = ConversationService.create_conversation(alice, [bob.id]).data

        result = ConversationService.create_conversation(bob, [alice.id])

        conversation, created = result.data
        assert created is False
        assert conversation.id == first.id
        assert Conversation.objects.filter(conversation_type=ConversationType.DIRECT).count() == 1

    def test_creator_id_in_list_is_ignored(self, alice, bob):
        result = ConversationService.create_conversation(alice, [alice.id, bob.id])

        conversation, _ = result.data
        assert conversation.is_direct is True

    def test_name_makes_a_group(self, alice, bob):
        result = ConversationService.create_conversation(alice, [bob.id], name="  Weekend  ")

        conversation, created = result.data
        assert created is True
        assert conversation.is_group is True
        assert conversation.title == "Weekend"

    def test_is_group_flag_makes_a_group_of_two(self, alice, bob):
        result = ConversationService.create_conversation(alice, [bob.id], is_group=True)

        conversation, _ = result.data
        assert conversation.is_group is True
        assert conversation.participant_count == 2

    def test_three_people_make_a_group(self, alice, bob, carol):
        result = ConversationService.create_conversation(alice, [bob.id, carol.id])

        conversation, _ = result.data
        assert conversation.is_group is True
        assert conversation.participant_count == 3
        assert set(
            conversation.get_active_participants().values_list("user_id", flat=True)
        ) == {alice.id, bob.id, carol.id}

    def test_groups_with_same_members_are_not_deduplicated(self, alice, bob, carol):
        first, _ = ConversationService.create_conversation(alice, [bob.id, carol.id]).data
        second, _ = ConversationService.create_conversation(alice, [bob.id, carol.id]).data

        assert first.id != second.id

    def test_only_self_fails_with_participants_required(self, alice):
        result = ConversationService.create_conversation(alice, [alice.id])

        assert result.success is False
        assert result.error_code == "PARTICIPANTS_REQUIRED"

    def test_unknown_user_fails_with_user_not_found(self, alice):
        result = ConversationService.create_conversation(alice, [999999])

        assert result.success is False
        assert result.error_code == "USER_NOT_FOUND"
        assert "999999" in result.error

    def test_inactive_user_is_treated_as_missing(self, alice):
        inactive = UserFactory(is_active=False)

        result = ConversationService.create_conversation(alice, [inactive.id])

        assert result.error_code == "USER_NOT_FOUND"

    def test_creator_who_left_direct_is_restored(self, alice, bob):
        """
        Given alice left the direct conversation with bob
        When alice starts a conversation with bob again
        Then alice is back in the same conversation
        """
        conversation, _ = ConversationService.create_conversation(alice, [bob.id]).data
        ParticipantService.leave(conversation, alice)

        result = ConversationService.create_conversation(alice, [bob.id])

        restored, created = result.data
        assert created is False
        assert restored.id == conversation.id
        assert restored.participant_count == 2
        assert ParticipantService.is_participant(conversation.id, alice.id) is True

    def test_other_member_who_left_direct_is_restored(self, alice, bob):
        """
        Given bob left the direct conversation with alice
        When alice starts a conversation with bob again
        Then both are active members of the same conversation
        """
        conversation, _ = ConversationService.create_conversation(alice, [bob.id]).data
        ParticipantService.leave(conversation, bob)

        result = ConversationService.create_conversation(alice, [bob.id])

        restored, created = result.data
        assert created is False
        assert restored.id == conversation.id
        assert restored.participant_count == 2
        assert ParticipantService.is_participant(conversation.id, alice.id) is True
        assert ParticipantService.is_participant(conversation.id, bob.id) is True
        assert restored.get_active_participants().count() == 2


# =============================================================================
# TestConversationServiceCreateDirect
# =============================================================================


class TestConversationServiceCreateDirect:
    """Tests for ConversationService.create_direct()."""

    def test_same_user_fails(self, alice):
        result = ConversationService.create_direct(alice, alice)

        assert result.success is False
        assert result.error_code == "SAME_USER"

    def test_pair_stored_in_canonical_order(self, alice, bob):
        high, low = (alice, bob) if alice.id > bob.id else (bob, alice)

        conversation = ConversationService.create_direct(high, low).data

        assert conversation.direct_pair.user_lower_id == low.id
        assert conversation.direct_pair.user_higher_id == high.id

    def test_abandoned_direct_is_replaced(self, alice, bob):
        """
        Given both users left their direct conversation (soft deleted)
        When a new direct conversation is requested
        Then a fresh conversation is created
        """
        old = ConversationService.create_direct(alice, bob).data
        ParticipantService.leave(old, alice)
        ParticipantService.leave(old, bob)

        new = ConversationService.create_direct(alice, bob).data

        assert new.id != old.id
        assert new.is_deleted is False


# =============================================================================
# TestConversationServiceQueries
# =============================================================================


class TestConversationServiceQueries:
    """Tests for get_conversation() and get_user_conversations()."""

    def test_get_conversation_returns_live_conversation(self, group_conversation):
        assert ConversationService.get_conversation(group_conversation.id) == group_conversation

    def test_get_conversation_hides_deleted(self, group_conversation):
        group_conversation.soft_delete()

        assert ConversationService.get_conversation(group_conversation.id) is None

    def test_get_conversation_tolerates_garbage_ids(self, db):
        assert ConversationService.get_conversation("abc") is None
        assert ConversationService.get_conversation(None) is None

    def test_user_conversations_sorted_by_activity(self, alice, bob, carol):
        """
        Given an older conversation with a recent message and a newer
        silent conversation
        When listing
        Then the one with the recent message comes first
        """
        with freeze_time("2026-01-01 10:00:00"):
            older = DirectConversationFactory(user1=alice, user2=bob)
        with freeze_time("2026-01-01 11:00:00"):
            newer = DirectConversationFactory(user1=alice, user2=carol)
        with freeze_time("2026-01-01 12:00:00"):
            MessageService.send_message(older, bob, "ping")

        ids = list(ConversationService.get_user_conversations(alice).values_list("id", flat=True))

        assert ids == [older.id, newer.id]

    def test_user_conversations_exclude_left_and_foreign(self, alice, bob, carol):
        mine = DirectConversationFactory(user1=alice, user2=bob)
        left = GroupConversationFactory(created_by=alice, members=[bob])
        ParticipantService.leave(left, alice)
        DirectConversationFactory(user1=bob, user2=carol)

        ids = list(ConversationService.get_user_conversations(alice).values_list("id", flat=True))

        assert ids == [mine.id]


# =============================================================================
# TestParticipantService
# =============================================================================


class TestParticipantServiceIsParticipant:
    """Tests for ParticipantService.is_participant()."""

    def test_active_member_is_participant(self, group_conversation, bob):
        assert ParticipantService.is_participant(group_conversation.id, bob.id) is True

    def test_outsider_is_not_participant(self, group_conversation, outsider):
        assert ParticipantService.is_participant(group_conversation.id, outsider.id) is False

    def test_deleted_conversation_has_no_participants(self, group_conversation, bob):
        group_conversation.soft_delete()

        assert ParticipantService.is_participant(group_conversation.id, bob.id) is False

    def test_unknown_conversation(self, bob):
        assert ParticipantService.is_participant(424242, bob.id) is False


class TestParticipantServiceAddParticipant:
    """Tests for ParticipantService.add_participant()."""

    def test_member_adds_user_to_group(self, group_conversation, bob, outsider):
        result = ParticipantService.add_participant(group_conversation, outsider, added_by=bob)

        assert result.success is True
        group_conversation.refresh_from_db()
        assert group_conversation.participant_count == 4
        assert ParticipantService.is_participant(group_conversation.id, outsider.id)

    def test_direct_conversation_is_closed(self, direct_conversation, alice, outsider):
        result = ParticipantService.add_participant(direct_conversation, outsider, added_by=alice)

        assert result.error_code == "NOT_GROUP"

    def test_non_member_cannot_add(self, group_conversation, outsider):
        newcomer = UserFactory()

        result = ParticipantService.add_participant(group_conversation, newcomer, added_by=outsider)

        assert result.error_code == "NOT_PARTICIPANT"

    def test_existing_member_cannot_be_added_twice(self, group_conversation, alice, bob):
        result = ParticipantService.add_participant(group_conversation, bob, added_by=alice)

        assert result.error_code == "ALREADY_PARTICIPANT"


class TestParticipantServiceLeave:
    """Tests for ParticipantService.leave()."""

    def test_leave_sets_left_at_and_decrements_count(self, group_conversation, bob):
        result = ParticipantService.leave(group_conversation, bob)

        assert result.success is True
        assert group_conversation.participant_count == 2
        participant = Participant.objects.get(conversation=group_conversation, user=bob)
        assert participant.left_at is not None

    def test_non_member_cannot_leave(self, group_conversation, outsider):
        result = ParticipantService.leave(group_conversation, outsider)

        assert result.error_code == "NOT_PARTICIPANT"

    def test_last_participant_leaving_soft_deletes(self, direct_conversation, alice, bob):
        """
        Why it matters: a live conversation never has an empty participant set.
        """
        ParticipantService.leave(direct_conversation, alice)
        ParticipantService.leave(direct_conversation, bob)

        direct_conversation.refresh_from_db()
        assert direct_conversation.is_deleted is True
        assert ConversationService.get_conversation(direct_conversation.id) is None


# =============================================================================
# TestMessageService
# =============================================================================


class TestMessageServiceValidateContent:
    """Tests for MessageService.validate_content()."""

    def test_trims_whitespace(self):
        result = MessageService.validate_content("  hello \n")

        assert result.data == "hello"

    def test_whitespace_only_is_empty(self):
        result = MessageService.validate_content("   \t\n ")

        assert result.error_code == "EMPTY_CONTENT"

    def test_non_string_is_empty(self):
        assert MessageService.validate_content(None).error_code == "EMPTY_CONTENT"
        assert MessageService.validate_content(42).error_code == "EMPTY_CONTENT"

    def test_limit_is_measured_after_trimming(self):
        content = "  " + "a" * MESSAGE_CONFIG.MAX_CONTENT_LENGTH + "  "

        assert MessageService.validate_content(content).success is True

    def test_one_over_limit_is_too_long(self):
        result = MessageService.validate_content("a" * (MESSAGE_CONFIG.MAX_CONTENT_LENGTH + 1))

        assert result.error_code == "CONTENT_TOO_LONG"


class TestMessageServiceSendMessage:
    """Tests for MessageService.send_message()."""

    def test_stores_trimmed_message(self, direct_conversation, alice):
        result = MessageService.send_message(direct_conversation, alice, "  hi bob  ")

        assert result.success is True
        message = result.data
        assert message.content == "hi bob"
        assert message.sender == alice
        assert message.is_read is False
        assert Message.objects.filter(pk=message.pk).exists()

    def test_sequences_increase_per_conversation(self, direct_conversation, group_conversation, alice):
        first = MessageService.send_message(direct_conversation, alice, "one").data
        second = MessageService.send_message(direct_conversation, alice, "two").data
        other = MessageService.send_message(group_conversation, alice, "elsewhere").data

        assert (first.sequence, second.sequence) == (1, 2)
        assert other.sequence == 1

    def test_advances_last_message_at(self, direct_conversation, alice):
        with freeze_time("2026-03-01 09:00:00"):
            message = MessageService.send_message(direct_conversation, alice, "morning").data

        direct_conversation.refresh_from_db()
        assert direct_conversation.last_message_at == message.created_at
        assert direct_conversation.last_sequence == message.sequence

    def test_last_message_at_never_moves_backwards(self, direct_conversation, alice):
        """
        Given a conversation whose last_message_at is in the future
        When a message is stored now
        Then last_message_at keeps the later value
        """
        future = timezone.now() + timedelta(hours=1)
        Conversation.objects.filter(pk=direct_conversation.pk).update(last_message_at=future)
        direct_conversation.refresh_from_db()

        MessageService.send_message(direct_conversation, alice, "late")

        direct_conversation.refresh_from_db()
        assert direct_conversation.last_message_at == future

    def test_empty_content_is_refused_before_store(self, direct_conversation, alice):
        result = MessageService.send_message(direct_conversation, alice, "   ")

        assert result.error_code == "EMPTY_CONTENT"
        assert not Message.objects.exists()

    def test_non_participant_is_refused(self, direct_conversation, outsider):
        result = MessageService.send_message(direct_conversation, outsider, "hello?")

        assert result.error_code == "NOT_PARTICIPANT"
        assert not Message.objects.exists()

    def test_deleted_conversation_is_refused(self, group_conversation, alice):
        group_conversation.soft_delete()

        result = MessageService.send_message(group_conversation, alice, "anyone?")

        assert result.error_code == "CONVERSATION_DELETED"


class TestMessageServiceListMessages:
    """Tests for MessageService.list_messages()."""

    def test_newest_first(self, direct_conversation, alice):
        for text in ("a", "b", "c"):
            MessageService.send_message(direct_conversation, alice, text)

        contents = [m.content for m in MessageService.list_messages(direct_conversation)]

        assert contents == ["c", "b", "a"]

    def test_before_sequence_pages_backwards(self, direct_conversation, alice):
        for i in range(5):
            MessageService.send_message(direct_conversation, alice, f"m{i}")

        page = MessageService.list_messages(direct_conversation, before_sequence=4, limit=2)

        assert [m.sequence for m in page] == [3, 2]

    def test_limit_is_capped(self, direct_conversation, alice):
        for _ in range(3):
            MessageFactory(conversation=direct_conversation, sender=alice)

        page = MessageService.list_messages(direct_conversation, limit=0)

        assert len(page) == 1


class TestMessageServiceMarkAsRead:
    """Tests for MessageService.mark_as_read()."""

    def test_marks_only_other_authors_messages(self, direct_conversation, alice, bob):
        mine = MessageService.send_message(direct_conversation, alice, "from alice").data
        theirs = MessageService.send_message(direct_conversation, bob, "from bob").data

        result = MessageService.mark_as_read(direct_conversation, alice)

        assert result.data == 1
        mine.refresh_from_db()
        theirs.refresh_from_db()
        assert mine.is_read is False
        assert theirs.is_read is True

    def test_second_call_is_a_no_op(self, direct_conversation, alice, bob):
        MessageService.send_message(direct_conversation, bob, "hi")
        MessageService.mark_as_read(direct_conversation, alice)

        result = MessageService.mark_as_read(direct_conversation, alice)

        assert result.success is True
        assert result.data == 0

    def test_stamps_last_read_at(self, direct_conversation, alice):
        MessageService.mark_as_read(direct_conversation, alice)

        participant = direct_conversation.get_active_participant_for_user(alice)
        assert participant.last_read_at is not None

    def test_non_participant_is_refused(self, direct_conversation, outsider):
        result = MessageService.mark_as_read(direct_conversation, outsider)

        assert result.error_code == "NOT_PARTICIPANT"


class TestMessageServiceUnreadCount:
    """Tests for MessageService.get_unread_count()."""

    def test_counts_unread_from_others(self, group_conversation, alice, bob, carol):
        MessageService.send_message(group_conversation, bob, "one")
        MessageService.send_message(group_conversation, carol, "two")
        MessageService.send_message(group_conversation, alice, "mine")

        assert MessageService.get_unread_count(group_conversation, alice) == 2

    def test_zero_after_mark_as_read(self, group_conversation, alice, bob):
        MessageService.send_message(group_conversation, bob, "one")
        MessageService.mark_as_read(group_conversation, alice)

        assert MessageService.get_unread_count(group_conversation, alice) == 0

    def test_zero_for_outsider(self, group_conversation, bob, outsider):
        MessageService.send_message(group_conversation, bob, "one")

        assert MessageService.get_unread_count(group_conversation, outsider) == 0
