"""
Tests for chat permission classes.

IsConversationParticipant is checked against a request built with
APIRequestFactory, for both Conversation and Message objects.
"""

from django.contrib.auth.models import AnonymousUser
from django.utils import timezone
from rest_framework.test import APIRequestFactory

from chat.models import Participant
from chat.permissions import IsConversationParticipant
from chat.tests.factories import MessageFactory


def _request(user):
    request = APIRequestFactory().get("/")
    request.user = user
    return request


class TestIsConversationParticipant:
    """Tests for IsConversationParticipant.has_object_permission()."""

    def test_active_participant_allowed(self, direct_conversation, alice):
        permission = IsConversationParticipant()

        assert permission.has_object_permission(_request(alice), None, direct_conversation) is True

    def test_outsider_denied(self, direct_conversation, outsider):
        permission = IsConversationParticipant()

        assert permission.has_object_permission(_request(outsider), None, direct_conversation) is False

    def test_participant_who_left_denied(self, group_conversation, bob):
        Participant.objects.filter(conversation=group_conversation, user=bob).update(
            left_at=timezone.now()
        )
        permission = IsConversationParticipant()

        assert permission.has_object_permission(_request(bob), None, group_conversation) is False

    def test_anonymous_denied(self, direct_conversation):
        permission = IsConversationParticipant()

        assert (
            permission.has_object_permission(_request(AnonymousUser()), None, direct_conversation)
            is False
        )

    def test_message_checked_through_its_conversation(self, direct_conversation, alice, outsider):
        message = MessageFactory(conversation=direct_conversation, sender=alice)
        permission = IsConversationParticipant()

        assert permission.has_object_permission(_request(alice), None, message) is True
        assert permission.has_object_permission(_request(outsider), None, message) is False

    def test_denial_carries_not_participant_code(self):
        assert IsConversationParticipant.code == "not_participant"
