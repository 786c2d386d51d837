"""
Views for authentication endpoints.

Token issuance is provided by djangorestframework-simplejwt
(TokenObtainPairView / TokenRefreshView, wired in urls.py). This module
only adds the endpoint clients use to discover their own identity.
"""

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import UserSerializer


class CurrentUserView(APIView):
    """
    Return the authenticated user.

    The chat client calls this once after login to learn its own user id,
    which it needs to ignore its own typing signals and to tell its own
    messages apart when applying read receipts.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Current user",
        responses={200: UserSerializer},
        tags=["Authentication"],
    )
    def get(self, request):
        return Response(
            {"success": True, "data": UserSerializer(request.user).data}
        )
