"""
Identity views.

Endpoints:
    /api/v1/auth/login/    - Obtain JWT pair and mark the user online
    /api/v1/auth/refresh/  - Refresh an access token
    /api/v1/auth/logout/   - Mark the user offline
    /api/v1/auth/me/       - Current user (GET/PATCH)

Related files:
    - services.py: IdentityService.set_online
    - serializers.py: UserSerializer, ProfileUpdateSerializer
"""

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.views import TokenObtainPairView

from identity.serializers import ProfileUpdateSerializer, UserSerializer
from identity.services import IdentityService


@extend_schema(
    summary="Sign in",
    description="Exchange email and password for a JWT pair. Marks the user online.",
    tags=["Auth"],
)
class LoginView(TokenObtainPairView):
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as e:
            raise InvalidToken(e.args[0])

        IdentityService.set_online(serializer.user.pk, True)
        return Response(serializer.validated_data, status=status.HTTP_200_OK)


class LogoutView(APIView):
    """Mark the caller offline. Tokens simply expire."""

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Sign out", responses={204: None}, tags=["Auth"])
    def post(self, request):
        IdentityService.set_online(request.user.pk, False)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MeView(APIView):
    """Current user record."""

    permission_classes = [IsAuthenticated]

    @extend_schema(summary="Current user", responses={200: UserSerializer}, tags=["Auth"])
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @extend_schema(
        summary="Update profile",
        request=ProfileUpdateSerializer,
        responses={200: UserSerializer},
        tags=["Auth"],
    )
    def patch(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(UserSerializer(request.user).data)
