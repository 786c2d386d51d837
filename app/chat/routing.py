"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - Single multiplexed chat connection per client

Authentication:
    JWT access token as query parameter (?token=<jwt_access_token>) or
    subprotocol ("jwt", <token>). JWTAuthMiddleware validates the token
    and attaches the user to the consumer's scope.

The room registry is created once per process and handed to every
consumer instance.
"""

from django.urls import path

from chat import consumers
from chat.rooms import RoomRegistry

room_registry = RoomRegistry()

websocket_urlpatterns = [
    path(
        "ws/chat/",
        consumers.ChatConsumer.as_asgi(rooms=room_registry),
    ),
]
