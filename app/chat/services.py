"""
Chat system service layer.

This module is the only path to durable chat storage. The HTTP views, the
WebSocket consumer and the Celery sweep all call into it, so a message
sent over either delivery path goes through identical validation.

Services:
    ConversationService: Conversation lifecycle (create, list, lookup)
    ParticipantService: Membership (add, leave, membership checks)
    MessageService: Message operations (append, list, mark read, unread counts)
    PresenceService: Live connection bookkeeping and online/offline transitions

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure()
    - Unexpected failures (database errors) raise
    - Message append locks the conversation row, so sequence numbers and
      last_message_at are assigned atomically with the insert
    - Presence transitions lock the user row, so a disconnect racing a new
      connect for the same user can never produce a premature "offline"

Usage:
    from chat.services import ConversationService, MessageService

    result = ConversationService.create_conversation(
        creator=employer,
        participant_ids=[worker.id],
    )
    conversation = result.data

    result = MessageService.send_message(
        conversation=conversation,
        sender=employer,
        content="Can you start Monday?",
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.db.models import F
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.services import BaseService, ServiceResult

from chat.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
from chat.models import (
    Conversation,
    ConversationType,
    DirectConversationPair,
    LiveConnection,
    Message,
    Participant,
)

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

    from authentication.models import User

logger = logging.getLogger(__name__)


class ConversationService(BaseService):
    """
    Service for conversation lifecycle operations.

    Methods:
        create_conversation: Create from a list of participant ids (direct or group)
        create_direct: Create or retrieve direct conversation between two users
        create_group: Create a new group conversation
        get_conversation: Look up a live conversation by id
        get_user_conversations: List user's active conversations
    """

    @classmethod
    def create_conversation(
        cls,
        creator: User,
        participant_ids: list[int],
        name: str = "",
        is_group: bool | None = None,
    ) -> ServiceResult[tuple[Conversation, bool]]:
        """
        Create a conversation from the ids a client supplied.

        The participant set is the supplied ids plus the creator. The
        conversation is a group when any of these holds:
        - is_group is True
        - a non-blank name is given
        - more than two ids were supplied, or the set has three or more members

        Otherwise it is a direct conversation, which is unique per pair: an
        existing one is returned instead of creating a duplicate, with any
        member of the pair who had left restored.

        Args:
            creator: Authenticated user creating the conversation
            participant_ids: Ids of the other participants (creator optional)
            name: Optional display name (makes it a group)
            is_group: Explicit group flag from the client

        Returns:
            ServiceResult with (conversation, created)

        Error codes:
            PARTICIPANTS_REQUIRED: Need at least one participant besides the creator
            USER_NOT_FOUND: One of the ids does not match an active user
        """
        name = name.strip() if name else ""
        requested_ids = list(dict.fromkeys(participant_ids or []))
        other_ids = [pk for pk in requested_ids if pk != creator.id]

        if not other_ids:
            return ServiceResult.failure(
                "At least one other participant is required",
                error_code="PARTICIPANTS_REQUIRED",
            )

        User = get_user_model()
        others = list(User.objects.filter(pk__in=other_ids, is_active=True))
        if len(others) != len(other_ids):
            found = {u.pk for u in others}
            missing = [pk for pk in other_ids if pk not in found]
            return ServiceResult.failure(
                f"Users not found: {', '.join(str(pk) for pk in missing)}",
                error_code="USER_NOT_FOUND",
            )

        make_group = (
            bool(is_group)
            or bool(name)
            or len(requested_ids) > 2
            or len(others) + 1 > 2
        )

        if make_group:
            result = cls.create_group(creator, name, initial_members=others)
            return result.map(lambda conversation: (conversation, True))

        existing = cls._find_direct(creator, others[0])
        if existing is not None:
            # Both members of the pair must be active again
            rejoining = [
                user
                for user in (creator, others[0])
                if not existing.get_active_participant_for_user(user)
            ]
            if rejoining:
                with cls.atomic():
                    for user in rejoining:
                        Participant.objects.create(conversation=existing, user=user)
                    existing.participant_count = F("participant_count") + len(rejoining)
                    existing.save(update_fields=["participant_count", "updated_at"])
                    existing.refresh_from_db()
                cls.get_logger().info(
                    f"Restored users {[u.id for u in rejoining]} to direct conversation {existing.id}"
                )
            cls.get_logger().debug(
                f"Returning existing direct conversation {existing.id} "
                f"for users {creator.id} and {others[0].id}"
            )
            return ServiceResult.success((existing, False))

        result = cls.create_direct(creator, others[0])
        return result.map(lambda conversation: (conversation, True))

    @classmethod
    def _find_direct(cls, user1: User, user2: User) -> Conversation | None:
        user_lower, user_higher = (
            (user1, user2) if user1.id < user2.id else (user2, user1)
        )
        pair = (
            DirectConversationPair.objects.select_related("conversation")
            .filter(user_lower=user_lower, user_higher=user_higher)
            .first()
        )
        if pair is None or pair.conversation.is_deleted:
            return None
        return pair.conversation

    @classmethod
    def create_direct(
        cls,
        user1: User,
        user2: User,
    ) -> ServiceResult[Conversation]:
        """
        Create or retrieve a direct conversation between two users.

        Implementation:
            1. Validate users are different
            2. Canonicalize order (lower user_id first)
            3. Look up existing DirectConversationPair
            4. If found and live, return it; if found but soft deleted
               (both users left), drop the stale pair
            5. Create new conversation within transaction

        Error codes:
            SAME_USER: Cannot create direct conversation with yourself
        """
        if user1.id == user2.id:
            return ServiceResult.failure(
                "Cannot create a direct conversation with yourself",
                error_code="SAME_USER",
            )

        user_lower, user_higher = (
            (user1, user2) if user1.id < user2.id else (user2, user1)
        )

        with cls.atomic():
            pair = (
                DirectConversationPair.objects.select_for_update()
                .select_related("conversation")
                .filter(user_lower=user_lower, user_higher=user_higher)
                .first()
            )
            if pair is not None:
                if not pair.conversation.is_deleted:
                    return ServiceResult.success(pair.conversation)
                pair.delete()

            conversation = Conversation.objects.create(
                conversation_type=ConversationType.DIRECT,
                title="",
                created_by=user1,
                participant_count=2,
            )
            DirectConversationPair.objects.create(
                conversation=conversation,
                user_lower=user_lower,
                user_higher=user_higher,
            )
            Participant.objects.create(conversation=conversation, user=user_lower)
            Participant.objects.create(conversation=conversation, user=user_higher)

        cls.get_logger().info(
            f"Created direct conversation {conversation.id} "
            f"between users {user_lower.id} and {user_higher.id}"
        )

        return ServiceResult.success(conversation)

    @classmethod
    def create_group(
        cls,
        creator: User,
        title: str = "",
        initial_members: list[User] | None = None,
    ) -> ServiceResult[Conversation]:
        """
        Create a new group conversation.

        Args:
            creator: User creating the group (always a participant)
            title: Optional group name
            initial_members: Users to add alongside the creator

        Returns:
            ServiceResult with new Conversation
        """
        title = title.strip() if title else ""
        members = []
        if initial_members:
            members = [u for u in initial_members if u.id != creator.id]

        with cls.atomic():
            conversation = Conversation.objects.create(
                conversation_type=ConversationType.GROUP,
                title=title,
                created_by=creator,
                participant_count=1 + len(members),
            )
            Participant.objects.bulk_create(
                [Participant(conversation=conversation, user=creator)]
                + [Participant(conversation=conversation, user=m) for m in members]
            )

        cls.get_logger().info(
            f"Created group conversation {conversation.id} "
            f"titled '{title}' with {1 + len(members)} participants"
        )

        return ServiceResult.success(conversation)

    @staticmethod
    def get_conversation(conversation_id) -> Conversation | None:
        """Return a live (not soft deleted) conversation, or None."""
        try:
            return Conversation.objects.get(pk=conversation_id)
        except (Conversation.DoesNotExist, ValueError, TypeError):
            return None

    @staticmethod
    def get_user_conversations(user: User) -> QuerySet[Conversation]:
        """
        List the user's active conversations, most recent activity first.

        Conversations without messages sort by their creation time.
        """
        return (
            Conversation.objects.filter(
                participants__user=user,
                participants__left_at__isnull=True,
            )
            .annotate(activity_at=Coalesce("last_message_at", "created_at"))
            .order_by("-activity_at", "-id")
        )


class ParticipantService(BaseService):
    """
    Service for participant management operations.

    Methods:
        is_participant: Membership check used before every realtime intent
        add_participant: Add user to group conversation
        leave: User voluntarily leaves conversation
    """

    @staticmethod
    def is_participant(conversation_id, user_id) -> bool:
        """
        Check active membership in a live conversation.

        Returns False for unknown or soft deleted conversations.
        """
        return Participant.objects.filter(
            conversation_id=conversation_id,
            conversation__is_deleted=False,
            user_id=user_id,
            left_at__isnull=True,
        ).exists()

    @classmethod
    def add_participant(
        cls,
        conversation: Conversation,
        user_to_add: User,
        added_by: User,
    ) -> ServiceResult[Participant]:
        """
        Add a user to a group conversation.

        Any active participant may add others. Direct conversations have
        fixed membership.

        Error codes:
            NOT_GROUP: Cannot add participants to direct conversations
            NOT_PARTICIPANT: Adding user is not in this conversation
            ALREADY_PARTICIPANT: User is already in this conversation
        """
        if conversation.is_direct:
            return ServiceResult.failure(
                "Cannot add participants to direct conversations",
                error_code="NOT_GROUP",
            )

        if not conversation.get_active_participant_for_user(added_by):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        if conversation.get_active_participant_for_user(user_to_add):
            return ServiceResult.failure(
                "User is already a participant in this conversation",
                error_code="ALREADY_PARTICIPANT",
            )

        with cls.atomic():
            participant = Participant.objects.create(
                conversation=conversation,
                user=user_to_add,
            )
            conversation.participant_count = F("participant_count") + 1
            conversation.save(update_fields=["participant_count", "updated_at"])
            conversation.refresh_from_db()

        cls.get_logger().info(
            f"Added user {user_to_add.id} to conversation {conversation.id} "
            f"by user {added_by.id}"
        )

        return ServiceResult.success(participant)

    @classmethod
    def leave(
        cls,
        conversation: Conversation,
        user: User,
    ) -> ServiceResult[None]:
        """
        User voluntarily leaves a conversation.

        When nobody remains the conversation is soft deleted, so a live
        conversation never has an empty participant set.

        Error codes:
            NOT_PARTICIPANT: User is not in this conversation
        """
        participant = conversation.get_active_participant_for_user(user)
        if not participant:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        with cls.atomic():
            participant.left_at = timezone.now()
            participant.save(update_fields=["left_at", "updated_at"])

            conversation.participant_count = F("participant_count") - 1
            conversation.save(update_fields=["participant_count", "updated_at"])
            conversation.refresh_from_db()

            if not conversation.get_active_participants().exists():
                conversation.soft_delete()
                cls.get_logger().info(
                    f"Soft deleted conversation {conversation.id} (no remaining participants)"
                )

        cls.get_logger().info(f"User {user.id} left conversation {conversation.id}")

        return ServiceResult.success(None)


class MessageService(BaseService):
    """
    Service for message operations.

    Methods:
        validate_content: Trim and check content before touching the store
        send_message: Append a message
        list_messages: Newest-first page of history
        mark_as_read: Flip other authors' messages to read
        get_unread_count: Count of unread messages for a user
    """

    @staticmethod
    def validate_content(content) -> ServiceResult[str]:
        """
        Trim content and check its length.

        Error codes:
            EMPTY_CONTENT: Nothing left after trimming
            CONTENT_TOO_LONG: Longer than MESSAGE_CONFIG.MAX_CONTENT_LENGTH
        """
        content = content.strip() if isinstance(content, str) else ""
        if len(content) < MESSAGE_CONFIG.MIN_CONTENT_LENGTH:
            return ServiceResult.failure(
                "Message content cannot be empty",
                error_code="EMPTY_CONTENT",
            )
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            return ServiceResult.failure(
                f"Message content cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
            )
        return ServiceResult.success(content)

    @classmethod
    def send_message(
        cls,
        conversation: Conversation,
        sender: User,
        content: str,
    ) -> ServiceResult[Message]:
        """
        Append a message to a conversation.

        Content is validated before any store interaction. Inside one
        transaction the conversation row is locked, the next sequence
        number is taken, the message is inserted and last_message_at is
        advanced (never moved backwards).

        Returns:
            ServiceResult with new Message

        Error codes:
            EMPTY_CONTENT / CONTENT_TOO_LONG: Invalid content
            CONVERSATION_DELETED: Cannot send to deleted conversation
            NOT_PARTICIPANT: User is not active in conversation
        """
        validation = cls.validate_content(content)
        if not validation:
            return validation
        content = validation.data

        if conversation.is_deleted:
            return ServiceResult.failure(
                "Cannot send messages to a deleted conversation",
                error_code="CONVERSATION_DELETED",
            )

        if not conversation.get_active_participant_for_user(sender):
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        with cls.atomic():
            locked = Conversation.all_objects.select_for_update().get(pk=conversation.pk)
            if locked.is_deleted:
                return ServiceResult.failure(
                    "Cannot send messages to a deleted conversation",
                    error_code="CONVERSATION_DELETED",
                )

            sequence = locked.last_sequence + 1
            message = Message.objects.create(
                conversation=locked,
                sender=sender,
                content=content,
                sequence=sequence,
            )

            last_message_at = message.created_at
            if locked.last_message_at and locked.last_message_at > last_message_at:
                last_message_at = locked.last_message_at

            Conversation.all_objects.filter(pk=locked.pk).update(
                last_sequence=sequence,
                last_message_at=last_message_at,
                updated_at=timezone.now(),
            )

        conversation.last_sequence = sequence
        conversation.last_message_at = last_message_at
        message.conversation = conversation

        cls.get_logger().debug(
            f"User {sender.id} sent message {message.id} (seq {sequence}) "
            f"to conversation {conversation.id}"
        )

        return ServiceResult.success(message)

    @staticmethod
    def list_messages(
        conversation: Conversation,
        before_sequence: int | None = None,
        limit: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
    ) -> list[Message]:
        """
        Return a page of messages, newest first.

        Args:
            conversation: Conversation to read
            before_sequence: Only messages older than this sequence number
            limit: Page size (capped at MESSAGE_CONFIG.MAX_PAGE_SIZE)
        """
        limit = max(1, min(limit, MESSAGE_CONFIG.MAX_PAGE_SIZE))
        queryset = conversation.messages.select_related("sender").order_by("-sequence", "-id")
        if before_sequence is not None:
            queryset = queryset.filter(sequence__lt=before_sequence)
        return list(queryset[:limit])

    @classmethod
    def mark_as_read(
        cls,
        conversation: Conversation,
        user: User,
    ) -> ServiceResult[int]:
        """
        Mark every unread message authored by someone else as read.

        Also stamps the participant's last_read_at. Calling it again when
        nothing is unread is a no-op that returns 0.

        Returns:
            ServiceResult with the number of messages flipped to read

        Error codes:
            NOT_PARTICIPANT: User is not in this conversation
        """
        participant = conversation.get_active_participant_for_user(user)
        if not participant:
            return ServiceResult.failure(
                "You are not a participant in this conversation",
                error_code="NOT_PARTICIPANT",
            )

        with cls.atomic():
            updated = (
                Message.objects.filter(conversation=conversation, is_read=False)
                .exclude(sender=user)
                .update(is_read=True, updated_at=timezone.now())
            )
            participant.last_read_at = timezone.now()
            participant.save(update_fields=["last_read_at", "updated_at"])

        cls.get_logger().debug(
            f"User {user.id} marked {updated} messages read in conversation {conversation.id}"
        )

        return ServiceResult.success(updated)

    @classmethod
    def get_unread_count(
        cls,
        conversation: Conversation,
        user: User,
    ) -> int:
        """
        Count unread messages for a user in a conversation.

        Messages from the user themselves are excluded. Returns 0 if the
        user is not a participant.
        """
        participant = conversation.get_active_participant_for_user(user)
        if not participant:
            return 0

        queryset = conversation.messages.filter(is_read=False).exclude(sender=user)
        if participant.last_read_at:
            queryset = queryset.filter(created_at__gt=participant.last_read_at)
        return queryset.count()


# =============================================================================
# Presence
# =============================================================================


@dataclass(frozen=True)
class PresenceUpdate:
    """
    Outcome of a presence operation.

    Attributes:
        user_id: User whose presence was touched
        is_online: Presence after the operation
        last_seen: Timestamp of the last transition
        connection_count: Live connections remaining for the user
        changed: True when the operation produced a broadcast-worthy change
    """

    user_id: int
    is_online: bool
    last_seen: datetime | None
    connection_count: int
    changed: bool

    def to_payload(self) -> dict:
        """Payload of the user_status_change event."""
        return {
            "user_id": self.user_id,
            "is_online": self.is_online,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


class PresenceService(BaseService):
    """
    Presence tracking backed by LiveConnection rows.

    A user is online while at least one LiveConnection exists for them.
    Every transition runs in a transaction holding a row lock on the user,
    so concurrent connects and disconnects for the same user serialize and
    the offline transition happens exactly when the count goes from 1 to 0.

    Methods:
        connect: Register a connection and mark online
        disconnect: Drop a connection, mark offline on the last one
        heartbeat: Refresh a connection's liveness
        get_presence: Current presence of a user
        sweep_stale_connections: Drop connections left behind by crashed workers
    """

    @staticmethod
    def _lock_user(user_id):
        User = get_user_model()
        return User.objects.select_for_update().get(pk=user_id)

    @classmethod
    def connect(cls, user: User, channel_name: str) -> ServiceResult[PresenceUpdate]:
        """
        Register a live connection for the user.

        Always reports changed=True: opening a connection broadcasts the
        user's presence so every client can refresh last_seen.
        """
        now = timezone.now()
        with cls.atomic():
            locked = cls._lock_user(user.pk)
            LiveConnection.objects.update_or_create(
                channel_name=channel_name,
                defaults={"user": locked, "last_heartbeat_at": now},
            )
            count = LiveConnection.objects.filter(user=locked).count()
            get_user_model().objects.filter(pk=locked.pk).update(is_online=True, last_seen=now)

        cls.get_logger().info(
            f"User {user.pk} connected on {channel_name} ({count} live connections)"
        )
        return ServiceResult.success(
            PresenceUpdate(
                user_id=user.pk,
                is_online=True,
                last_seen=now,
                connection_count=count,
                changed=True,
            )
        )

    @classmethod
    def disconnect(cls, user: User, channel_name: str) -> ServiceResult[PresenceUpdate]:
        """
        Remove a live connection.

        Marks the user offline with last_seen=now only when this was their
        last connection. A connection already removed by the stale sweep
        produces no change.
        """
        now = timezone.now()
        with cls.atomic():
            locked = cls._lock_user(user.pk)
            removed, _ = LiveConnection.objects.filter(
                channel_name=channel_name, user=locked
            ).delete()
            count = LiveConnection.objects.filter(user=locked).count()
            went_offline = removed > 0 and count == 0
            if went_offline:
                get_user_model().objects.filter(pk=locked.pk).update(
                    is_online=False, last_seen=now
                )
                last_seen = now
            else:
                last_seen = locked.last_seen

        if went_offline:
            cls.get_logger().info(f"User {user.pk} went offline")
        else:
            cls.get_logger().debug(
                f"User {user.pk} closed {channel_name} ({count} live connections remain)"
            )

        return ServiceResult.success(
            PresenceUpdate(
                user_id=user.pk,
                is_online=count > 0,
                last_seen=last_seen,
                connection_count=count,
                changed=went_offline,
            )
        )

    @classmethod
    def heartbeat(cls, channel_name: str) -> bool:
        """Refresh a connection's heartbeat. Returns False if it is unknown."""
        updated = LiveConnection.objects.filter(channel_name=channel_name).update(
            last_heartbeat_at=timezone.now()
        )
        return updated > 0

    @classmethod
    def get_presence(cls, user_id) -> ServiceResult[PresenceUpdate]:
        """
        Current presence of a user.

        Error codes:
            USER_NOT_FOUND: No such user
        """
        User = get_user_model()
        user = User.objects.filter(pk=user_id).first()
        if user is None:
            return ServiceResult.failure("User not found", error_code="USER_NOT_FOUND")
        return ServiceResult.success(
            PresenceUpdate(
                user_id=user.pk,
                is_online=user.is_online,
                last_seen=user.last_seen,
                connection_count=LiveConnection.objects.filter(user=user).count(),
                changed=False,
            )
        )

    @classmethod
    def sweep_stale_connections(
        cls,
        max_age_seconds: int = PRESENCE_CONFIG.STALE_CONNECTION_SECONDS,
    ) -> ServiceResult[list[PresenceUpdate]]:
        """
        Drop connections whose heartbeat is older than max_age_seconds.

        A worker that crashes never runs its disconnect handler, so its
        connections would keep users online forever without this sweep.

        Returns:
            ServiceResult with a PresenceUpdate for each user that went offline
        """
        now = timezone.now()
        cutoff = now - timedelta(seconds=max_age_seconds)
        user_ids = list(
            LiveConnection.objects.filter(last_heartbeat_at__lt=cutoff)
            .values_list("user_id", flat=True)
            .distinct()
        )

        updates = []
        for user_id in user_ids:
            with cls.atomic():
                locked = cls._lock_user(user_id)
                removed, _ = LiveConnection.objects.filter(
                    user=locked, last_heartbeat_at__lt=cutoff
                ).delete()
                remaining = LiveConnection.objects.filter(user=locked).count()
                if removed and remaining == 0 and locked.is_online:
                    get_user_model().objects.filter(pk=locked.pk).update(
                        is_online=False, last_seen=now
                    )
                    updates.append(
                        PresenceUpdate(
                            user_id=user_id,
                            is_online=False,
                            last_seen=now,
                            connection_count=0,
                            changed=True,
                        )
                    )

        if user_ids:
            cls.get_logger().info(
                f"Swept stale connections for {len(user_ids)} users, "
                f"{len(updates)} went offline"
            )

        return ServiceResult.success(updates)
