"""
Chat system models.

This module defines the data models for job-related conversations:
- Direct (1:1) conversations between exactly two users
- Group conversations between any number of users

Models:
    Conversation: Container for messages between participants
    DirectConversationPair: Enforces one direct conversation per user pair
    Participant: User membership in a conversation with read tracking
    Message: Individual message within a conversation
    LiveConnection: One open realtime connection (drives presence)

Design Decisions:
    - Messages are append-only: content and created_at never change after
      insert, is_read only moves from False to True
    - Each message gets a per-conversation sequence number assigned under a
      row lock on the conversation, giving a total order that stays stable
      when two messages share a timestamp
    - last_message_at only ever advances
    - A conversation whose active participant set becomes empty is soft
      deleted, so no live conversation is ever empty
    - Presence is derived from LiveConnection rows: a user is online while
      at least one row exists
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import F, Q

from core.managers import SoftDeleteManager
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from authentication.models import User


class ConversationType(models.TextChoices):
    """
    Type of conversation.

    DIRECT: Exactly two participants, unique per user pair
    GROUP: Any number of participants, optional name, members can be added
    """

    DIRECT = "direct", "Direct Message"
    GROUP = "group", "Group"


class Conversation(SoftDeleteMixin, BaseModel):
    """
    A conversation between two or more users.

    Fields:
        conversation_type: Type of conversation (direct or group)
        title: Display name for group conversations (exposed as "name")
        created_by: User who created the conversation
        participant_count: Cached count of active participants
        last_message_at: Timestamp of most recent message (for sorting)
        last_sequence: Sequence number of the most recent message

    Relationships:
        participants: All Participant records for this conversation
        messages: All Message records for this conversation
        direct_pair: DirectConversationPair if type is DIRECT
    """

    conversation_type = models.CharField(
        max_length=10,
        choices=ConversationType.choices,
        default=ConversationType.DIRECT,
        db_index=True,
        help_text="Type of conversation (direct or group)",
    )

    title = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Name for group conversations (empty for direct)",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_conversations",
        help_text="User who created this conversation",
    )

    participant_count = models.PositiveIntegerField(
        default=0,
        help_text="Current number of active participants (cached for performance)",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of most recent message (for sorting conversation lists)",
    )

    last_sequence = models.PositiveBigIntegerField(
        default=0,
        help_text="Sequence number of the most recent message",
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]
        base_manager_name = "all_objects"
        indexes = [
            # Sort by last activity (live conversations only)
            models.Index(
                fields=["-last_message_at"],
                name="chat_conv_last_msg_idx",
                condition=Q(is_deleted=False),
            ),
        ]

    def __str__(self) -> str:
        if self.conversation_type == ConversationType.DIRECT:
            return f"Direct({self.pk})"
        if self.title:
            return f"Group: {self.title}"
        return f"Group({self.pk})"

    @property
    def is_direct(self) -> bool:
        return self.conversation_type == ConversationType.DIRECT

    @property
    def is_group(self) -> bool:
        return self.conversation_type == ConversationType.GROUP

    def get_active_participants(self):
        """
        Get queryset of active participants.

        Returns:
            QuerySet of Participant objects where left_at is NULL
        """
        return self.participants.filter(left_at__isnull=True)

    def get_active_participant_for_user(self, user: User) -> Participant | None:
        """Return the user's active participation, or None."""
        return self.participants.filter(user=user, left_at__isnull=True).first()


class DirectConversationPair(models.Model):
    """
    Enforces uniqueness of direct conversations between two users.

    Stores user pairs in canonical order (lower user_id first) so that
    regardless of who initiates, there is only one direct conversation
    between any pair.

    Constraints:
        - UniqueConstraint(user_lower, user_higher): One conversation per pair
        - CheckConstraint(user_lower_id < user_higher_id): Canonical order
    """

    conversation = models.OneToOneField(
        Conversation,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="direct_pair",
        help_text="The direct conversation this pair represents",
    )

    user_lower = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with lower ID in this conversation pair",
    )

    user_higher = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="+",
        help_text="User with higher ID in this conversation pair",
    )

    class Meta:
        db_table = "chat_direct_conversation_pair"
        constraints = [
            models.UniqueConstraint(
                fields=["user_lower", "user_higher"],
                name="unique_direct_conversation_pair",
            ),
            models.CheckConstraint(
                condition=Q(user_lower_id__lt=F("user_higher_id")),
                name="user_lower_less_than_higher",
            ),
        ]

    def __str__(self) -> str:
        return f"DirectPair({self.user_lower_id}, {self.user_higher_id})"


class Participant(BaseModel):
    """
    Tracks user participation in conversations.

    Each join creates a new Participant record. Leaving sets left_at;
    rejoining later creates a fresh record, so membership history is kept.

    Fields:
        conversation: Conversation this participation belongs to
        user: User participating in the conversation
        joined_at: When the user joined
        left_at: When the user left (NULL if still active)
        last_read_at: Last time the user marked the conversation read

    Constraints:
        - UniqueConstraint(conversation, user) WHERE left_at IS NULL:
          Only one active participation per user per conversation
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Conversation this participation belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="conversation_participations",
        help_text="User participating in the conversation",
    )

    joined_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user joined this conversation",
    )

    left_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the user left (null if still active)",
    )

    last_read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last time user marked conversation as read",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["joined_at", "id"]
        indexes = [
            models.Index(
                fields=["conversation", "left_at"],
                name="chat_part_conv_active_idx",
            ),
            models.Index(
                fields=["user", "left_at", "-joined_at"],
                name="chat_part_user_active_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                condition=Q(left_at__isnull=True),
                name="unique_active_participation",
            ),
        ]

    def __str__(self) -> str:
        status = "active" if self.is_active else "left"
        return f"Participant: {self.user_id} in {self.conversation_id} [{status}]"

    @property
    def is_active(self) -> bool:
        return self.left_at is None


class Message(BaseModel):
    """
    A message within a conversation.

    Messages are never edited or deleted. The only mutable field is
    is_read, which flips from False to True when another participant
    marks the conversation read.

    Fields:
        conversation: Conversation this message belongs to
        sender: User who sent the message
        content: Trimmed, non-empty message text
        sequence: Position in the conversation's total order (1, 2, 3, ...)
        is_read: Whether a recipient has read the message
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_messages",
        help_text="User who sent this message",
    )

    content = models.TextField(
        help_text="Message text",
    )

    sequence = models.PositiveBigIntegerField(
        help_text="Per-conversation order, assigned when the message is stored",
    )

    is_read = models.BooleanField(
        default=False,
        help_text="Whether a recipient has read this message",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["-sequence", "-id"]
        indexes = [
            models.Index(
                fields=["sender", "-created_at"],
                name="chat_msg_sender_idx",
            ),
            models.Index(
                fields=["conversation", "is_read"],
                name="chat_msg_conv_unread_idx",
                condition=Q(is_read=False),
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "sequence"],
                name="unique_message_sequence",
            ),
        ]

    def __str__(self) -> str:
        content_preview = (
            self.content[:50] + "..." if len(self.content) > 50 else self.content
        )
        return f"User {self.sender_id}: {content_preview}"


class LiveConnection(models.Model):
    """
    One open realtime connection.

    Rows are created when a WebSocket is accepted and deleted when it
    closes. A crashed worker can leave rows behind; the periodic sweep
    removes any row whose heartbeat is older than the stale threshold.

    Fields:
        user: Owner of the connection
        channel_name: Channel layer address of the consumer (unique)
        connected_at: When the connection was accepted
        last_heartbeat_at: Last heartbeat intent received
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="live_connections",
        help_text="User who owns this connection",
    )

    channel_name = models.CharField(
        max_length=255,
        unique=True,
        help_text="Channel layer name of the consumer instance",
    )

    connected_at = models.DateTimeField(
        auto_now_add=True,
        help_text="When the connection was accepted",
    )

    last_heartbeat_at = models.DateTimeField(
        db_index=True,
        help_text="Last heartbeat received on this connection",
    )

    class Meta:
        db_table = "chat_live_connection"
        ordering = ["connected_at"]

    def __str__(self) -> str:
        return f"LiveConnection({self.user_id}, {self.channel_name})"
