from rest_framework.permissions import BasePermission


class IsModerator(BasePermission):
    message = "Moderator privileges required."

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and getattr(user, "is_moderator", False))


def is_moderator(user) -> bool:
    return bool(getattr(user, "is_moderator", False))
