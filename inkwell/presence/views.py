import logging

from asgiref.sync import async_to_sync
from django.contrib.auth import get_user_model
from django.db.models import F
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import IsAdmin
from core.pagination import StandardResultsSetPagination
from presence.exceptions import InvalidUser
from presence.serializers import UserPresenceSerializer
from presence.service import get_presence_service

logger = logging.getLogger(__name__)

User = get_user_model()


def _is_self(request, user_id) -> bool:
    return str(request.user.pk) == str(user_id)


class UserStatusViewSet(viewsets.GenericViewSet):
    """
    User directory listing and presence endpoints.

    Presence writes (`activity`, `offline`) go through the presence service so
    that it stays the single writer of is_online / last_active.
    """
    serializer_class = UserPresenceSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return User.objects.order_by(F('last_active').desc(nulls_last=True), 'id')

    def get_permissions(self):
        if self.action == 'user_status':
            permission_classes = [permissions.AllowAny]
        elif self.action in ['list', 'all_statuses']:
            permission_classes = [permissions.IsAuthenticated, IsAdmin]
        else:
            permission_classes = [permissions.IsAuthenticated]
        return [permission() for permission in permission_classes]

    def list(self, request):
        """All users, filtered by `role` and `isOnline`, most recently active first."""
        users = self.get_queryset()

        role = request.query_params.get('role')
        if role:
            users = users.filter(role=role)

        is_online = request.query_params.get('isOnline')
        if is_online is not None:
            users = users.filter(is_online=is_online.lower() == 'true')

        page = self.paginate_queryset(users)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = self.get_serializer(users, many=True)
        return Response({'count': len(serializer.data), 'results': serializer.data})

    @action(detail=False, methods=['get'], url_path='status')
    def all_statuses(self, request):
        """Every user's presence (admin dashboard)."""
        serializer = self.get_serializer(self.get_queryset(), many=True)
        return Response({
            'success': True,
            'count': len(serializer.data),
            'data': serializer.data,
        })

    @action(detail=False, methods=['get'], url_path=r'status/(?P<user_id>[^/.]+)')
    def user_status(self, request, user_id=None):
        """One user's presence."""
        user = self._get_user(user_id)
        if user is None:
            return Response(
                {'success': False, 'message': 'User not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response({'success': True, 'data': self.get_serializer(user).data})

    @action(detail=False, methods=['put'], url_path=r'activity/(?P<user_id>[^/.]+)')
    def activity(self, request, user_id=None):
        """HTTP heartbeat: refresh last_active (self or admin)."""
        if not (_is_self(request, user_id) or request.user.is_admin):
            return Response(
                {'success': False, 'message': "Not authorized to update this user's activity"},
                status=status.HTTP_403_FORBIDDEN
            )
        try:
            event = async_to_sync(get_presence_service().touch)(user_id)
        except InvalidUser:
            return Response(
                {'success': False, 'message': 'User not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response({
            'success': True,
            'message': 'User activity updated',
            'data': event.to_payload(),
        })

    @action(detail=True, methods=['put'], url_path='offline')
    def offline(self, request, pk=None):
        """
        Logout fallback: force the caller offline.

        Used by clients on explicit sign-out when the socket disconnect may be
        delayed or lost during page teardown. Callers may only target themselves.
        """
        if not _is_self(request, pk):
            logger.warning(f"User {request.user.pk} tried to force user {pk} offline")
            return Response(
                {'success': False, 'message': "Not authorized to update this user's status"},
                status=status.HTTP_403_FORBIDDEN
            )
        try:
            event = async_to_sync(get_presence_service().force_offline)(pk)
        except InvalidUser:
            return Response(
                {'success': False, 'message': 'User not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        return Response({
            'success': True,
            'message': 'User status updated to offline',
            'data': event.to_payload(),
        })

    def _get_user(self, user_id):
        try:
            return User.objects.filter(pk=int(user_id)).first()
        except (TypeError, ValueError):
            return None
