# accounts/authz.py
"""
Authorization utilities for Hive.

Provides:
- ActorContext: Immutable context for the current request
- resolve_actor: Extract actor context from request
- require: Check permissions and raise if not granted

Permissions are checked:
1. By role first (Admin / Super Admin: implicit allow)
2. Everyone else: permission names granted through their roles

The actor carries the request's TenantContext explicitly, so everything
downstream (commands, row resolution, exports) receives tenancy as an
argument instead of reading ambient request state.
"""

from dataclasses import dataclass
from typing import FrozenSet

from django.conf import settings
from django.core.exceptions import PermissionDenied
from rest_framework.exceptions import NotAuthenticated

from tenant.context import TenantContext


@dataclass(frozen=True)
class ActorContext:
    """
    Immutable context for the current actor (user + workspace).

    Attributes:
        user: The authenticated user
        tenant: The workspace the request was made against
        roles: Names of the user's roles
        perms: Permission names granted through those roles
    """
    user: object  # User model
    tenant: TenantContext
    roles: FrozenSet[str]
    perms: FrozenSet[str]

    def has(self, name: str) -> bool:
        if not getattr(self.user, "is_active", False):
            return False
        if self.is_admin:
            return True
        return name in self.perms

    @property
    def is_admin(self) -> bool:
        """Admin and Super Admin hold every permission in their workspace."""
        return bool(self.roles & set(settings.PROTECTED_ROLE_NAMES))

    @property
    def is_super_admin(self) -> bool:
        return settings.SUPER_ADMIN_ROLE in self.roles


def resolve_actor(request) -> ActorContext:
    """
    Extract ActorContext from the current request.

    Roles and permissions are loaded fresh on every call so that changes take
    effect immediately.

    Raises:
        NotAuthenticated: If user is not authenticated
        PermissionDenied: If the user does not belong to the request's workspace
    """
    user = getattr(request, "user", None)

    if not user or not user.is_authenticated:
        raise NotAuthenticated("Authentication required.")

    tenant = getattr(request, "tenant", None) or TenantContext.central()

    if user.tenant_id != tenant.tenant_id:
        raise PermissionDenied("You do not belong to this workspace.")

    roles = list(user.roles.filter(guard_name=tenant.guard).prefetch_related("permissions"))
    perms = frozenset(
        permission.name for role in roles for permission in role.permissions.all()
    )

    return ActorContext(
        user=user,
        tenant=tenant,
        roles=frozenset(role.name for role in roles),
        perms=perms,
    )


def require(actor: ActorContext, name: str) -> None:
    """
    Require that the actor has a specific permission.

    Raises:
        PermissionDenied: If permission is not granted
    """
    if not actor.has(name):
        raise PermissionDenied(f"Permission denied: {name}")
