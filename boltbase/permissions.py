from rest_framework.permissions import BasePermission


class IsStoreAdmin(BasePermission):
    """Allow only callers resolved as admin (including open mode)."""

    message = "admin credential required"

    def has_permission(self, request, view):
        return bool(request.auth is not None and request.auth.is_admin)
