import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Conversation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("is_deleted", models.BooleanField(db_index=True, default=False, help_text="Whether this record has been soft deleted")),
                ("deleted_at", models.DateTimeField(blank=True, help_text="Timestamp when this record was soft deleted", null=True)),
                ("conversation_type", models.CharField(choices=[("direct", "Direct Message"), ("group", "Group")], db_index=True, default="direct", help_text="Type of conversation (direct or group)", max_length=10)),
                ("title", models.CharField(blank=True, default="", help_text="Name for group conversations (empty for direct)", max_length=100)),
                ("participant_count", models.PositiveIntegerField(default=0, help_text="Current number of active participants (cached for performance)")),
                ("last_message_at", models.DateTimeField(blank=True, db_index=True, help_text="Timestamp of most recent message (for sorting conversation lists)", null=True)),
                ("last_sequence", models.PositiveBigIntegerField(default=0, help_text="Sequence number of the most recent message")),
                ("created_by", models.ForeignKey(blank=True, help_text="User who created this conversation", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="created_conversations", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "chat_conversation",
                "ordering": ["-last_message_at", "-created_at"],
                "base_manager_name": "all_objects",
                "indexes": [
                    models.Index(condition=models.Q(("is_deleted", False)), fields=["-last_message_at"], name="chat_conv_last_msg_idx"),
                ],
            },
            managers=[
                ("objects", models.Manager()),
                ("all_objects", models.Manager()),
            ],
        ),
        migrations.CreateModel(
            name="DirectConversationPair",
            fields=[
                ("conversation", models.OneToOneField(help_text="The direct conversation this pair represents", on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name="direct_pair", serialize=False, to="chat.conversation")),
                ("user_higher", models.ForeignKey(help_text="User with higher ID in this conversation pair", on_delete=django.db.models.deletion.CASCADE, related_name="+", to=settings.AUTH_USER_MODEL)),
                ("user_lower", models.ForeignKey(help_text="User with lower ID in this conversation pair", on_delete=django.db.models.deletion.CASCADE, related_name="+", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "chat_direct_conversation_pair",
                "constraints": [
                    models.UniqueConstraint(fields=("user_lower", "user_higher"), name="unique_direct_conversation_pair"),
                    models.CheckConstraint(condition=models.Q(("user_lower_id__lt", models.F("user_higher_id"))), name="user_lower_less_than_higher"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("joined_at", models.DateTimeField(auto_now_add=True, help_text="When the user joined this conversation")),
                ("left_at", models.DateTimeField(blank=True, db_index=True, help_text="When the user left (null if still active)", null=True)),
                ("last_read_at", models.DateTimeField(blank=True, help_text="Last time user marked conversation as read", null=True)),
                ("conversation", models.ForeignKey(help_text="Conversation this participation belongs to", on_delete=django.db.models.deletion.CASCADE, related_name="participants", to="chat.conversation")),
                ("user", models.ForeignKey(help_text="User participating in the conversation", on_delete=django.db.models.deletion.CASCADE, related_name="conversation_participations", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "chat_participant",
                "ordering": ["joined_at", "id"],
                "indexes": [
                    models.Index(fields=["conversation", "left_at"], name="chat_part_conv_active_idx"),
                    models.Index(fields=["user", "left_at", "-joined_at"], name="chat_part_user_active_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("left_at__isnull", True)), fields=("conversation", "user"), name="unique_active_participation"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("content", models.TextField(help_text="Message text")),
                ("sequence", models.PositiveBigIntegerField(help_text="Per-conversation order, assigned when the message is stored")),
                ("is_read", models.BooleanField(default=False, help_text="Whether a recipient has read this message")),
                ("conversation", models.ForeignKey(help_text="Conversation this message belongs to", on_delete=django.db.models.deletion.CASCADE, related_name="messages", to="chat.conversation")),
                ("sender", models.ForeignKey(blank=True, help_text="User who sent this message", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="sent_messages", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["-sequence", "-id"],
                "indexes": [
                    models.Index(fields=["sender", "-created_at"], name="chat_msg_sender_idx"),
                    models.Index(condition=models.Q(("is_read", False)), fields=["conversation", "is_read"], name="chat_msg_conv_unread_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("conversation", "sequence"), name="unique_message_sequence"),
                ],
            },
        ),
        migrations.CreateModel(
            name="LiveConnection",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("channel_name", models.CharField(help_text="Channel layer name of the consumer instance", max_length=255, unique=True)),
                ("connected_at", models.DateTimeField(auto_now_add=True, help_text="When the connection was accepted")),
                ("last_heartbeat_at", models.DateTimeField(db_index=True, help_text="Last heartbeat received on this connection")),
                ("user", models.ForeignKey(help_text="User who owns this connection", on_delete=django.db.models.deletion.CASCADE, related_name="live_connections", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "db_table": "chat_live_connection",
                "ordering": ["connected_at"],
            },
        ),
    ]
