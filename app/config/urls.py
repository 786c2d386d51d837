"""
URL configuration for the chat delivery service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints (simplejwt)
        token/                     - Obtain access/refresh pair
        token/refresh/             - Refresh access token
        me/                        - Current user
    /api/v1/chats/                 - Chat endpoints
        {id}/                      - Conversation detail
        {id}/read/                 - Mark conversation as read
        {id}/leave/                - Leave conversation
        {id}/participants/         - Add participant
        {id}/messages/             - Message history / fallback send
        presence/{user_id}/        - User presence

WebSocket routes live in chat/routing.py (ws/chat/).
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("chats/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chat Admin"
admin.site.site_title = "Chat Admin Portal"
admin.site.index_title = "Conversations and presence"
