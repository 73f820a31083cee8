from rest_framework.permissions import BasePermission


class IsAuthenticatedActor(BasePermission):
    """Any user identified by the edge, customer or admin."""

    message = "AUTHENTICATION_REQUIRED"

    def has_permission(self, request, view):
        actor = getattr(request, "actor", None)
        return bool(actor and actor.is_authenticated)


class IsAdminActor(BasePermission):
    message = "ADMIN_REQUIRED"

    def has_permission(self, request, view):
        actor = getattr(request, "actor", None)
        return bool(actor and actor.is_admin)
