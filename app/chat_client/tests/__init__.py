"""
Tests for chat_client.

This package contains test modules for:
- test_state.py: ChatState reducer
- test_session.py: ChatSession delivery, fallback and realtime events
- test_api.py: HttpChatApi envelope handling and error mapping
- test_errors.py: error_from_response

Helpers live in payloads.py (server-shaped dicts) and fakes.py
(in-memory ChatApi and RealtimeTransport).
"""
