"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Conversation management
- Participant viewing
- Message moderation
- Live connection inspection
"""

from django.contrib import admin

from chat.models import (
    Conversation,
    DirectConversationPair,
    LiveConnection,
    Message,
    Participant,
)


class ParticipantInline(admin.TabularInline):
    """Inline display of participants in conversation admin."""

    model = Participant
    extra = 0
    readonly_fields = ["joined_at", "left_at", "last_read_at"]
    raw_id_fields = ["user"]


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    """Admin interface for Conversation model."""

    list_display = [
        "id",
        "conversation_type",
        "title",
        "participant_count",
        "last_sequence",
        "is_deleted",
        "last_message_at",
    ]
    list_filter = ["conversation_type", "is_deleted", "created_at"]
    search_fields = ["title", "id"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "deleted_at",
        "participant_count",
        "last_message_at",
        "last_sequence",
    ]
    raw_id_fields = ["created_by"]
    inlines = [ParticipantInline]
    ordering = ["-created_at"]

    def get_queryset(self, request):
        # Include soft deleted conversations
        return Conversation.all_objects.all()


@admin.register(DirectConversationPair)
class DirectConversationPairAdmin(admin.ModelAdmin):
    list_display = ["conversation", "user_lower", "user_higher"]
    raw_id_fields = ["conversation", "user_lower", "user_higher"]


@admin.register(Participant)
class ParticipantAdmin(admin.ModelAdmin):
    """Admin interface for Participant model."""

    list_display = ["id", "conversation", "user", "joined_at", "left_at", "last_read_at"]
    list_filter = ["joined_at", "left_at"]
    search_fields = ["user__email", "conversation__title"]
    readonly_fields = ["created_at", "updated_at", "joined_at"]
    raw_id_fields = ["conversation", "user"]
    ordering = ["-joined_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "conversation",
        "sequence",
        "sender",
        "content_preview",
        "is_read",
        "created_at",
    ]
    list_filter = ["is_read", "created_at"]
    search_fields = ["content", "sender__email"]
    readonly_fields = ["created_at", "updated_at", "sequence"]
    raw_id_fields = ["conversation", "sender"]
    ordering = ["-created_at"]

    @admin.display(description="Content Preview")
    def content_preview(self, obj: Message) -> str:
        """Return truncated content for list display."""
        max_length = 50
        if len(obj.content) > max_length:
            return obj.content[:max_length] + "..."
        return obj.content


@admin.register(LiveConnection)
class LiveConnectionAdmin(admin.ModelAdmin):
    list_display = ["channel_name", "user", "connected_at", "last_heartbeat_at"]
    search_fields = ["user__email", "channel_name"]
    raw_id_fields = ["user"]
    ordering = ["-last_heartbeat_at"]
