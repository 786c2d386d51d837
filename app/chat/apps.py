"""
Chat application configuration.

This app provides real-time delivery for job conversations:
- Direct (1:1) and group conversations
- Append-only message history with read receipts
- WebSocket fan-out, typing signals and presence
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
