from rest_framework import permissions


class IsAuthorOrAdmin(permissions.BasePermission):
    """
    Object-level permission: reads are open, writes are limited to the
    blog's author and to admins.
    """
    message = 'Not authorized to modify this blog'

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        user = request.user
        return bool(user and user.is_authenticated and (obj.author_id == user.pk or user.is_admin))
