"""
Permission classes for chat API.

- IsConversationParticipant: User is an active participant

Design Decisions:
    - Permissions check against the Participant model, not User
    - Active participant = left_at IS NULL
    - Denials carry the NOT_PARTICIPANT code so the HTTP fallback path
      reports the same reason the service layer would
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.models import Conversation, Message, Participant

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsConversationParticipant(permissions.BasePermission):
    """
    Allows access only to active participants of the conversation.

    Accepts a Conversation or a Message as the checked object.
    """

    message = "You are not a participant in this conversation."
    code = "not_participant"

    def has_object_permission(
        self, request: Request, view: APIView, obj: Conversation | Message
    ) -> bool:
        if not request.user.is_authenticated:
            return False

        conversation_id = obj.conversation_id if isinstance(obj, Message) else obj.pk

        return Participant.objects.filter(
            conversation_id=conversation_id,
            user=request.user,
            left_at__isnull=True,
        ).exists()
