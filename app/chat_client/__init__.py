"""
Chat client - reconciled client-side chat state.

Framework-free package for programs that talk to the chat service:

- state: Immutable ChatState and the reduce() function over client events
- session: ChatSession tying state, HTTP API and realtime transport together
- api: HttpChatApi (requests)
- transport: WebsocketTransport (websockets)
- protocols: ChatApi / RealtimeTransport interfaces
- errors: ChatClientError hierarchy

Usage:
    from chat_client import ChatSession, HttpChatApi, WebsocketTransport

    api = HttpChatApi("http://localhost:8000", access_token)
    transport = WebsocketTransport("ws://localhost:8000/ws/chat/", access_token)
    await transport.connect()

    session = ChatSession(api, user_id=me_id, transport=transport)
    await session.load()
"""

from .api import HttpChatApi
from .errors import (
    ChatClientError,
    NotParticipantError,
    StoreFailureError,
    TransportFailure,
    UnauthorizedError,
    ValidationError,
)
from .session import ChatSession
from .state import ChatState, reduce
from .transport import WebsocketTransport

__all__ = [
    "ChatSession",
    "ChatState",
    "reduce",
    "HttpChatApi",
    "WebsocketTransport",
    "ChatClientError",
    "UnauthorizedError",
    "NotParticipantError",
    "ValidationError",
    "StoreFailureError",
    "TransportFailure",
]
