"""
ViewSets for chat API.

This module provides the HTTP side of chat delivery:
- ConversationViewSet: list, create, retrieve, read, leave, add participant
- MessageViewSet: history and the delivery fallback path
- UserPresenceView: presence snapshot for one user

URL Structure:
    /api/v1/chats/                          GET, POST
    /api/v1/chats/{id}/                     GET
    /api/v1/chats/{id}/read/                POST
    /api/v1/chats/{id}/leave/               DELETE
    /api/v1/chats/{id}/participants/        POST
    /api/v1/chats/{id}/messages/            GET, POST
    /api/v1/chats/presence/{user_id}/       GET

Responses use the envelope {"success": true, "data": ...}; failures are
{"success": false, "error": ..., "error_code": ...}.

Delivery fallback:
    POST /chats/{id}/messages/ stores the message and returns it to the
    caller only. It does not fan out: other participants see the message
    on their next fetch or after reconnecting. Realtime delivery is the
    WebSocket consumer's job (chat.consumers).
"""

from __future__ import annotations

import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.broadcast import evict_from_room
from chat.models import Conversation
from chat.pagination import MessageCursorPagination
from chat.permissions import IsConversationParticipant
from chat.serializers import (
    ConversationCreateSerializer,
    ConversationDetailSerializer,
    ConversationListSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ParticipantCreateSerializer,
)
from chat.services import (
    ConversationService,
    MessageService,
    ParticipantService,
    PresenceService,
)

User = get_user_model()
logger = logging.getLogger(__name__)

# Service error codes -> HTTP status (anything else is 400)
ERROR_STATUS = {
    "NOT_PARTICIPANT": status.HTTP_403_FORBIDDEN,
    "CONVERSATION_DELETED": status.HTTP_404_NOT_FOUND,
    "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_PARTICIPANT": status.HTTP_409_CONFLICT,
}


def failure_response(result) -> Response:
    """Render a failed ServiceResult with the status its error code maps to."""
    return Response(
        result.to_response(),
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chats",
        summary="List chats",
        responses={200: ConversationListSerializer(many=True)},
        tags=["Chat"],
    ),
    create=extend_schema(
        operation_id="create_chat",
        summary="Create chat",
        request=ConversationCreateSerializer,
        responses={201: ConversationDetailSerializer, 200: ConversationDetailSerializer},
        tags=["Chat"],
    ),
    retrieve=extend_schema(
        operation_id="get_chat",
        summary="Get chat with participants and messages",
        responses={200: ConversationDetailSerializer},
        tags=["Chat"],
    ),
)
class ConversationViewSet(viewsets.GenericViewSet):
    """
    ViewSet for conversation operations.

    list:
        Conversations of the current user, most recent activity first,
        with participants (presence included), last message and unread count.

    create:
        Create a conversation from participant ids. Two people and no name
        give a direct conversation (existing one returned with 200); more
        people, a name, or is_group=true give a group (201).

    retrieve:
        Conversation with participants and the newest page of messages.
        Participants only.

    read:
        Mark other participants' messages as read.

    leave:
        Leave the conversation. The caller's live connections are evicted
        from its room.

    participants:
        Add a participant to a group conversation.
    """

    permission_classes = [IsAuthenticated]
    lookup_value_regex = r"\d+"

    def get_queryset(self):
        if self.action == "list":
            return (
                ConversationService.get_user_conversations(self.request.user)
                .prefetch_related("participants__user")
            )
        return Conversation.objects.all()

    def get_serializer_class(self):
        if self.action == "list":
            return ConversationListSerializer
        if self.action == "create":
            return ConversationCreateSerializer
        if self.action == "participants":
            return ParticipantCreateSerializer
        return ConversationDetailSerializer

    def get_permissions(self):
        if self.action in ("retrieve", "read", "leave", "participants"):
            return [IsAuthenticated(), IsConversationParticipant()]
        return [IsAuthenticated()]

    def _detail(self, conversation, status_code=status.HTTP_200_OK) -> Response:
        serializer = ConversationDetailSerializer(
            conversation, context=self.get_serializer_context()
        )
        return Response({"success": True, "data": serializer.data}, status=status_code)

    def list(self, request):
        serializer = ConversationListSerializer(
            self.get_queryset(), many=True, context=self.get_serializer_context()
        )
        return Response({"success": True, "data": serializer.data})

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = ConversationService.create_conversation(
            creator=request.user,
            participant_ids=data["participant_ids"],
            name=data.get("name", ""),
            is_group=data.get("is_group"),
        )
        if not result.success:
            return failure_response(result)

        conversation, created = result.data
        return self._detail(
            conversation,
            status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    def retrieve(self, request, pk=None):
        return self._detail(self.get_object())

    @extend_schema(
        operation_id="mark_chat_read",
        summary="Mark chat as read",
        request=None,
        tags=["Chat"],
    )
    def read(self, request, pk=None):
        conversation = self.get_object()

        result = MessageService.mark_as_read(conversation=conversation, user=request.user)
        if not result.success:
            return failure_response(result)

        return Response({"success": True, "data": {"marked_read": result.data}})

    @extend_schema(
        operation_id="leave_chat",
        summary="Leave chat",
        request=None,
        tags=["Chat"],
    )
    def leave(self, request, pk=None):
        conversation = self.get_object()

        result = ParticipantService.leave(conversation=conversation, user=request.user)
        if not result.success:
            return failure_response(result)

        evict_from_room(request.user.id, conversation.id)
        return Response({"success": True, "data": {"conversation_id": conversation.id}})

    @extend_schema(
        operation_id="add_chat_participant",
        summary="Add participant",
        request=ParticipantCreateSerializer,
        responses={201: ConversationDetailSerializer},
        tags=["Chat"],
    )
    def participants(self, request, pk=None):
        conversation = self.get_object()

        serializer = ParticipantCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_to_add = get_object_or_404(User, id=serializer.validated_data["user_id"])

        result = ParticipantService.add_participant(
            conversation=conversation,
            user_to_add=user_to_add,
            added_by=request.user,
        )
        if not result.success:
            return failure_response(result)

        conversation.refresh_from_db()
        return self._detail(conversation, status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chat_messages",
        summary="List messages (newest first)",
        responses={200: MessageSerializer(many=True)},
        tags=["Chat - Messages"],
    ),
    create=extend_schema(
        operation_id="send_chat_message",
        summary="Send message (fallback path, no fan-out)",
        request=MessageCreateSerializer,
        responses={201: MessageSerializer},
        tags=["Chat - Messages"],
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    ViewSet for message operations within a conversation.

    list:
        Message history, newest first, cursor paginated.

    create:
        Store a message and return it. No event is broadcast; this is the
        path clients use when their WebSocket is down or a realtime send
        timed out.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = MessageCursorPagination
    serializer_class = MessageSerializer

    def get_conversation(self) -> Conversation:
        """Get the parent conversation from URL and check membership."""
        conversation = get_object_or_404(
            Conversation.objects.all(),
            pk=self.kwargs.get("conversation_pk"),
        )
        permission = IsConversationParticipant()
        if not permission.has_object_permission(self.request, self, conversation):
            self.permission_denied(
                self.request,
                message=permission.message,
                code=permission.code,
            )
        return conversation

    def get_queryset(self):
        return self.get_conversation().messages.select_related("sender")

    def list(self, request, conversation_pk=None):
        page = self.paginate_queryset(self.get_queryset())
        serializer = MessageSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def create(self, request, conversation_pk=None):
        conversation = self.get_conversation()

        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.send_message(
            conversation=conversation,
            sender=request.user,
            content=serializer.validated_data["content"],
        )
        if not result.success:
            return failure_response(result)

        logger.info(
            f"Fallback send: message {result.data.id} by user {request.user.id} "
            f"in conversation {conversation.id}"
        )
        return Response(
            {"success": True, "data": MessageSerializer(result.data).data},
            status=status.HTTP_201_CREATED,
        )


class UserPresenceView(APIView):
    """
    Get presence status for a specific user.

    GET /api/v1/chats/presence/{user_id}/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_user_presence",
        summary="Get user presence",
        parameters=[
            OpenApiParameter(
                name="user_id",
                type=OpenApiTypes.INT,
                location=OpenApiParameter.PATH,
                description="ID of the user to query",
            ),
        ],
        responses={
            200: OpenApiResponse(description="{user_id, is_online, last_seen}"),
        },
        tags=["Chat - Presence"],
    )
    def get(self, request, user_id):
        result = PresenceService.get_presence(user_id)
        if not result.success:
            return failure_response(result)

        return Response({"success": True, "data": result.data.to_payload()})
