"""
Serializers for chat API.

MessageSerializer is also the payload of the realtime new_message event,
so a message looks the same whether it arrived over the WebSocket or in
an HTTP response. Clients rely on that to dedupe by id.

Serializer Hierarchy:
    MessageSerializer: Message with sender summary
    MessageCreateSerializer: Fallback send
    ParticipantCreateSerializer: Add participant to group
    ConversationListSerializer: List view with computed fields
    ConversationDetailSerializer: List fields plus newest-first messages
    ConversationCreateSerializer: Create direct or group conversation

Design Decisions:
    - Read and write serializers are separate for clarity
    - Participants are embedded as user summaries, presence included
    - Computed fields use SerializerMethodField
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

from authentication.serializers import UserSummarySerializer
from chat.constants import MESSAGE_CONFIG
from chat.models import Conversation, Message
from chat.services import MessageService

User = get_user_model()


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Message as delivered to clients.

    Ordering key on the client is (created_at, sequence, id).
    """

    sender = UserSummarySerializer(read_only=True, allow_null=True)
    conversation_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sender",
            "content",
            "sequence",
            "is_read",
            "created_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """Serializer for sending messages over the fallback path."""

    content = serializers.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        help_text="Message content (trimmed, max 10,000 characters)",
    )


# =============================================================================
# Participant Serializers
# =============================================================================


class ParticipantCreateSerializer(serializers.Serializer):
    """Serializer for adding participants to group conversations."""

    user_id = serializers.IntegerField(help_text="User ID to add to conversation")

    def validate_user_id(self, value: int) -> int:
        if not User.objects.filter(id=value, is_active=True).exists():
            raise serializers.ValidationError("User not found or inactive")
        return value


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationListSerializer(serializers.ModelSerializer):
    """
    Serializer for conversation list view.

    Computed fields:
    - name: Group name, blank for direct conversations
    - participants: Active participants with presence
    - last_message: Most recent message
    - unread_count: Unread messages for the requesting user
    """

    name = serializers.CharField(source="title", read_only=True)
    is_group = serializers.BooleanField(read_only=True)
    participants = serializers.SerializerMethodField(
        help_text="Active participants with presence"
    )
    last_message = serializers.SerializerMethodField(
        help_text="Most recent message"
    )
    unread_count = serializers.SerializerMethodField(
        help_text="Number of unread messages"
    )

    class Meta:
        model = Conversation
        fields = [
            "id",
            "is_group",
            "name",
            "participant_count",
            "participants",
            "last_message",
            "last_message_at",
            "unread_count",
            "created_at",
        ]
        read_only_fields = fields

    def get_participants(self, obj: Conversation) -> list[dict]:
        participants = (
            obj.get_active_participants().select_related("user").order_by("joined_at", "id")
        )
        return UserSummarySerializer([p.user for p in participants], many=True).data

    def get_last_message(self, obj: Conversation) -> dict | None:
        last_message = obj.messages.select_related("sender").order_by("-sequence").first()
        if last_message:
            return MessageSerializer(last_message).data
        return None

    def get_unread_count(self, obj: Conversation) -> int:
        request = self.context.get("request")
        if not request or not request.user.is_authenticated:
            return 0
        return MessageService.get_unread_count(obj, request.user)


class ConversationDetailSerializer(ConversationListSerializer):
    """
    Full conversation: list fields plus the newest page of messages.

    Older history is paged through GET /chats/<id>/messages/.
    """

    messages = serializers.SerializerMethodField(
        help_text="Most recent messages, newest first"
    )

    class Meta(ConversationListSerializer.Meta):
        fields = ConversationListSerializer.Meta.fields + ["messages"]

    def get_messages(self, obj: Conversation) -> list[dict]:
        messages = MessageService.list_messages(
            obj, limit=MESSAGE_CONFIG.DETAIL_MESSAGE_LIMIT
        )
        return MessageSerializer(messages, many=True).data


class ConversationCreateSerializer(serializers.Serializer):
    """
    Serializer for creating conversations.

    Whether the result is a group is decided by the service from the ids,
    the name and the optional is_group flag.
    """

    participant_ids = serializers.ListField(
        child=serializers.IntegerField(),
        allow_empty=False,
        help_text="User IDs to include (the caller is added automatically)",
    )
    name = serializers.CharField(
        max_length=100,
        required=False,
        allow_blank=True,
        default="",
        help_text="Optional name; naming a conversation makes it a group",
    )
    is_group = serializers.BooleanField(
        required=False,
        allow_null=True,
        default=None,
        help_text="Force a group conversation",
    )
