"""
Per-request identity context: who is calling and with which roles.

Services take an IdentityContext instead of a request so they can be
called from views, management commands and tests alike.
"""
from dataclasses import dataclass, field
from typing import FrozenSet

from apps.authz.models import RoleChoices


@dataclass(frozen=True)
class IdentityContext:
    subject_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_user(cls, user):
        if user is None or not user.is_authenticated:
            return cls(subject_id='', roles=frozenset())
        roles = frozenset(user.user_roles.values_list('role__name', flat=True))
        return cls(subject_id=user.subject_id, roles=roles)

    @classmethod
    def system(cls):
        """Administrative identity for management commands."""
        return cls(subject_id='system', roles=frozenset({RoleChoices.ADMIN.value}))

    def has_any(self, *roles):
        return bool(self.roles & {str(r) for r in roles})

    @property
    def is_admin(self):
        return RoleChoices.ADMIN.value in self.roles

    @property
    def is_doctor(self):
        return RoleChoices.DOCTOR.value in self.roles

    @property
    def is_patient(self):
        return RoleChoices.PATIENT.value in self.roles


def identity_for(request):
    """IdentityContext for a DRF request (cached on the request)."""
    identity = getattr(request, '_identity', None)
    if identity is None:
        identity = IdentityContext.from_user(request.user)
        request._identity = identity
    return identity
