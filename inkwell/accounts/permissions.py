from rest_framework import permissions

from .models import User


class IsAdmin(permissions.BasePermission):
    """Admin moderators only."""

    message = "Access denied. Admin role required."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.role == User.ROLE_ADMIN)


class IsCustomer(permissions.BasePermission):
    """Customer authors only."""

    message = "Access denied. Customer role required."

    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and request.user.role == User.ROLE_CUSTOMER)


class HasKnownRole(permissions.BasePermission):
    """Any authenticated admin or customer."""

    message = "Access denied. Authentication required."

    def has_permission(self, request, view):
        return bool(
            request.user
            and request.user.is_authenticated
            and request.user.role in (User.ROLE_ADMIN, User.ROLE_CUSTOMER)
        )
