"""
Authentication views.

This module provides API views for:
- Current user details

Note:
    Token endpoints come from rest_framework_simplejwt:
    - Obtain: /api/v1/auth/token/
    - Refresh: /api/v1/auth/token/refresh/
"""

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import UserSerializer


class CurrentUserView(APIView):
    """
    API view for the authenticated user.

    URL: /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user",
        description="Retrieve the authenticated user, role and managed stores.",
        tags=["Auth"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        serializer = UserSerializer(request.user)
        return Response(serializer.data)
