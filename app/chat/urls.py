"""
URL configuration for chat API.

URL Structure:
    Conversations:
        /                          GET, POST
        /{id}/                     GET
        /{id}/read/                POST
        /{id}/leave/               DELETE
        /{id}/participants/        POST

    Messages:
        /{id}/messages/            GET, POST

    Presence:
        /presence/{user_id}/       GET

All URLs are prefixed with /api/v1/chats/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from chat.views import ConversationViewSet, MessageViewSet, UserPresenceView

# Main router for conversations (list, create, retrieve)
router = SimpleRouter()
router.register(r"", ConversationViewSet, basename="conversation")

app_name = "chat"

urlpatterns = [
    path("presence/<int:user_id>/", UserPresenceView.as_view(), name="presence-user"),
    path(
        "<int:pk>/read/",
        ConversationViewSet.as_view({"post": "read"}),
        name="conversation-read",
    ),
    path(
        "<int:pk>/leave/",
        ConversationViewSet.as_view({"delete": "leave"}),
        name="conversation-leave",
    ),
    path(
        "<int:pk>/participants/",
        ConversationViewSet.as_view({"post": "participants"}),
        name="conversation-participants",
    ),
    # Nested routes for messages
    path(
        "<int:conversation_pk>/messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="conversation-message-list",
    ),
    path("", include(router.urls)),
]
