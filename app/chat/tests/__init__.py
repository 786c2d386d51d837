"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Conversation, Participant, Message model tests
- test_services.py: Conversation, participant and message services
- test_presence.py: PresenceService and presence broadcasts
- test_rooms.py: RoomRegistry subscriptions and fan-out
- test_consumers.py: WebSocket consumer tests
- test_middleware.py: JWT handshake authentication
- test_views.py: REST API endpoint tests
- test_permissions.py: IsConversationParticipant
- test_tasks.py: Stale connection sweep task

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
