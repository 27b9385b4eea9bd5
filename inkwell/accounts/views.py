import logging

from asgiref.sync import async_to_sync
from rest_framework import generics, permissions, status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from presence.exceptions import InvalidUser
from presence.service import get_presence_service

from .permissions import HasKnownRole, IsAdmin, IsCustomer
from .serializers import (
    LoginSerializer,
    PasswordChangeSerializer,
    ProfileUpdateSerializer,
    UserRegistrationSerializer,
    UserSerializer,
    tokens_for_user,
)

logger = logging.getLogger(__name__)


class SignupView(generics.CreateAPIView):
    """Register a new customer or admin."""
    serializer_class = UserRegistrationSerializer
    permission_classes = [permissions.AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"New {user.role} registered: {user.email}")
        return Response(
            {
                'success': True,
                'message': 'User registered successfully',
                'tokens': tokens_for_user(user),
                'user': UserSerializer(user).data,
            },
            status=status.HTTP_201_CREATED
        )


class LoginView(TokenObtainPairView):
    """Email/password login returning a JWT pair and the user."""
    serializer_class = LoginSerializer
    permission_classes = [permissions.AllowAny]


@api_view(['GET'])
def me(request):
    """Get the current user"""
    return Response({'success': True, 'user': UserSerializer(request.user).data})


@api_view(['POST'])
def logout(request):
    """
    Log out: mark the caller offline immediately.

    Tokens are stateless, so the client discards them; this endpoint only
    records the presence change and notifies other clients.
    """
    try:
        event = async_to_sync(get_presence_service().force_offline)(request.user.pk)
    except InvalidUser:
        logger.error(f"User not found for logout: {request.user.pk}")
        return Response(
            {'success': False, 'message': 'User not found'},
            status=status.HTTP_404_NOT_FOUND
        )
    logger.info(f"User {request.user.pk} logged out")
    return Response({
        'success': True,
        'message': 'Logout successful',
        'data': {
            'userId': event.user_id,
            'isOnline': event.is_online,
            'lastActive': event.last_active.isoformat() if event.last_active else None,
        },
    })


def _welcome(request, message):
    user = request.user
    return Response({
        'success': True,
        'message': message,
        'user': {'id': user.pk, 'name': user.name, 'email': user.email, 'role': user.role},
    })


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated, HasKnownRole])
def protected_route(request):
    return _welcome(request, f"Welcome, {request.user.name}! You are a {request.user.role}.")


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated, IsCustomer])
def customer_route(request):
    return _welcome(request, f"Welcome, Customer {request.user.name}!")


@api_view(['GET'])
@permission_classes([permissions.IsAuthenticated, IsAdmin])
def admin_route(request):
    return _welcome(request, f"Welcome, Admin {request.user.name}!")


class ProfileView(APIView):
    """Read or update the current user's profile"""

    def get(self, request):
        return Response({'success': True, 'user': UserSerializer(request.user).data})

    def put(self, request):
        serializer = ProfileUpdateSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        return Response({
            'success': True,
            'message': 'Profile updated successfully',
            'user': UserSerializer(user).data,
        })


class PasswordChangeView(APIView):
    def put(self, request):
        serializer = PasswordChangeSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        request.user.set_password(serializer.validated_data['new_password'])
        request.user.save(update_fields=['password', 'updated_at'])
        return Response({'success': True, 'message': 'Password changed successfully'})
