"""
Role-based permissions.

Viewsets declare which roles may read and which may write:

    read_roles = {RoleChoices.ADMIN, RoleChoices.DOCTOR}
    write_roles = {RoleChoices.ADMIN}

Per-action overrides go in `action_roles = {'schedule': {RoleChoices.PATIENT}}`.
"""
from rest_framework import permissions

from apps.authz.identity import identity_for
from apps.authz.models import RoleChoices


class RolePermission(permissions.BasePermission):
    """
    - action listed in view.action_roles -> those roles
    - safe methods -> view.read_roles
    - anything else -> view.write_roles
    """

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        action_roles = getattr(view, 'action_roles', {})
        action = getattr(view, 'action', None)
        if action in action_roles:
            allowed = action_roles[action]
        elif request.method in permissions.SAFE_METHODS:
            allowed = getattr(view, 'read_roles', set())
        else:
            allowed = getattr(view, 'write_roles', {RoleChoices.ADMIN})

        return identity_for(request).has_any(*allowed)

    def has_object_permission(self, request, view, obj):
        return self.has_permission(request, view)
