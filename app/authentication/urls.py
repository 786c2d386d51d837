"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/token/           - Obtain access/refresh pair (email + password)
    /api/v1/auth/token/refresh/   - Exchange refresh token for a new access token
    /api/v1/auth/me/              - Authenticated user's own record
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from authentication.views import CurrentUserView

app_name = "authentication"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("me/", CurrentUserView.as_view(), name="me"),
]
