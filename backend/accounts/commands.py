# accounts/commands.py
"""
Command layer for users, roles and permissions.

ALL mutations go through these commands:
- User creation/updates/deletion and activation toggling
- Role creation/updates/deletion (with permission sync)
- Permission creation/updates/deletion

This ensures:
1. Consistent validation
2. One place enforcing the protected super admin and protected roles
3. Cache invalidation for the user list statistics

Commands return CommandResult.fail for invalid input (HTTP 400) and raise
PermissionDenied for forbidden targets (HTTP 403).
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone
from django.utils.crypto import get_random_string

from accounts.authz import ActorContext, PermissionDenied, require
from accounts.models import Permission, Role

User = get_user_model()
logger = logging.getLogger(__name__)

MANAGE_USERS = "manage users"
MANAGE_ROLES = "manage roles"
MANAGE_PERMISSIONS = "manage permissions"


class CommandResult:
    def __init__(self, success: bool, data=None, error: str = None):
        self.success = success
        self.data = data
        self.error = error

    @classmethod
    def ok(cls, data=None):
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str):
        return cls(success=False, error=error)


# =============================================================================
# User statistics (cached)
# =============================================================================

def _stats_key(context) -> str:
    return f"user_stats_{context.guard}_{context.tenant_id or 'central'}"


def user_stats(context) -> dict:
    """Headline counts for the users table, cached per workspace."""
    key = _stats_key(context)
    stats = cache.get(key)
    if stats is None:
        users = User.objects.filter(tenant_id=context.tenant_id)
        stats = {
            "total_users": users.count(),
            "active_users": users.filter(is_active=True).count(),
            "new_this_week": users.filter(date_joined__gte=timezone.now() - timedelta(weeks=1)).count(),
        }
        cache.set(key, stats, settings.USER_STATS_CACHE_SECONDS)
    return stats


def clear_user_cache(context) -> None:
    cache.delete(_stats_key(context))


# =============================================================================
# Helpers
# =============================================================================

def is_protected_user(user) -> bool:
    """The central super admin: the configured protected id or anyone holding Super Admin."""
    return user.pk == settings.PROTECTED_USER_ID or user.has_role(settings.SUPER_ADMIN_ROLE)


def _workspace_role(actor: ActorContext, name: str):
    return Role.objects.filter(
        name=name, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    ).first()


def _workspace_user(actor: ActorContext, user_id: int):
    return User.objects.filter(pk=user_id, tenant_id=actor.tenant.tenant_id).first()


def _workspace_permissions(actor: ActorContext, names):
    """Resolve permission names in the actor's guard; returns (permissions, missing names)."""
    names = list(dict.fromkeys(names))
    found = list(Permission.objects.filter(
        name__in=names, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    ))
    missing = sorted(set(names) - {p.name for p in found})
    return found, missing


# =============================================================================
# Users
# =============================================================================

@transaction.atomic
def create_user(
    actor: ActorContext,
    name: str,
    email: str,
    role: str,
    password: str = None,
) -> CommandResult:
    """
    Create a user in the actor's workspace with a single role.

    Without a password a random one is set; the user is expected to choose
    their own through a password reset.
    """
    require(actor, MANAGE_USERS)

    if role == settings.SUPER_ADMIN_ROLE:
        raise PermissionDenied("You cannot create a Super Admin user.")

    if User.objects.filter(email__iexact=email).exists():
        return CommandResult.fail(f"User with email '{email}' already exists.")

    role_obj = _workspace_role(actor, role)
    if role_obj is None:
        return CommandResult.fail(f"Role '{role}' does not exist.")

    user = User.objects.create_user(
        email=email,
        name=name,
        password=password or get_random_string(32),
        tenant_id=actor.tenant.tenant_id,
        is_active=True,
    )
    user.roles.set([role_obj])

    clear_user_cache(actor.tenant)
    logger.info(
        "User created",
        extra={"user_id": user.pk, "role": role, "tenant": actor.tenant.tenant_id, "actor_id": actor.user.pk},
    )
    return CommandResult.ok({"user": user})


@transaction.atomic
def update_user(
    actor: ActorContext,
    user_id: int,
    **updates,
) -> CommandResult:
    """
    Update a user's profile, password or role.

    Returns:
        CommandResult with the user and a readable {field: change} summary
    """
    require(actor, MANAGE_USERS)

    target = _workspace_user(actor, user_id)
    if target is None:
        return CommandResult.fail("User not found.")

    if is_protected_user(target):
        raise PermissionDenied("The Central Super Admin cannot be modified.")

    new_role = updates.get("role")
    if new_role == settings.SUPER_ADMIN_ROLE:
        raise PermissionDenied("You cannot assign the Super Admin role.")

    changes = {}
    for field in ("name", "email"):
        if field in updates and getattr(target, field) != updates[field]:
            changes[field] = {"old": getattr(target, field), "new": updates[field]}
            setattr(target, field, updates[field])

    if "email" in changes:
        if User.objects.filter(email__iexact=updates["email"]).exclude(pk=target.pk).exists():
            return CommandResult.fail("Email already in use.")

    if updates.get("password"):
        target.set_password(updates["password"])
        changes["password"] = "changed"

    if new_role is not None:
        role_obj = _workspace_role(actor, new_role)
        if role_obj is None:
            return CommandResult.fail(f"Role '{new_role}' does not exist.")
        current = target.primary_role
        if current is None or current.name != new_role:
            target.roles.set([role_obj])
            changes["role"] = {"old": current.name if current else None, "new": new_role}

    target.save()
    clear_user_cache(actor.tenant)

    if changes:
        logger.info(
            "User updated",
            extra={"user_id": target.pk, "fields": sorted(changes), "actor_id": actor.user.pk},
        )
    return CommandResult.ok({"user": target, "changes": changes})


@transaction.atomic
def delete_user(actor: ActorContext, user_id: int) -> CommandResult:
    require(actor, MANAGE_USERS)

    target = _workspace_user(actor, user_id)
    if target is None:
        return CommandResult.fail("User not found.")
    if is_protected_user(target):
        raise PermissionDenied("CRITICAL: Cannot delete the Central Super Admin.")

    target.delete()
    clear_user_cache(actor.tenant)
    logger.info("User deleted", extra={"user_id": user_id, "actor_id": actor.user.pk})
    return CommandResult.ok()


@transaction.atomic
def toggle_user_status(actor: ActorContext, user_id: int) -> CommandResult:
    """Flip is_active. The protected super admin can never be deactivated."""
    require(actor, MANAGE_USERS)

    target = _workspace_user(actor, user_id)
    if target is None:
        return CommandResult.fail("User not found.")
    if is_protected_user(target):
        raise PermissionDenied("Cannot deactivate the Central Super Admin.")

    target.is_active = not target.is_active
    target.save(update_fields=["is_active"])
    clear_user_cache(actor.tenant)

    status = "activated" if target.is_active else "deactivated"
    logger.info(f"User {status}", extra={"user_id": target.pk, "actor_id": actor.user.pk})
    return CommandResult.ok({"user": target, "status": status})


# =============================================================================
# Roles
# =============================================================================

@transaction.atomic
def create_role(actor: ActorContext, name: str, permissions=None) -> CommandResult:
    require(actor, MANAGE_ROLES)

    if _workspace_role(actor, name) is not None:
        return CommandResult.fail(f"Role '{name}' already exists.")

    found, missing = _workspace_permissions(actor, permissions or [])
    if missing:
        return CommandResult.fail(f"Unknown permissions: {', '.join(missing)}")

    role = Role.objects.create(name=name, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id)
    role.permissions.set(found)

    logger.info("Role created", extra={"role_id": role.pk, "guard": role.guard_name, "actor_id": actor.user.pk})
    return CommandResult.ok({"role": role})


@transaction.atomic
def update_role(actor: ActorContext, role_id: int, name: str, permissions=None) -> CommandResult:
    """Rename a role and, when permissions is given, replace its permission set."""
    require(actor, MANAGE_ROLES)

    role = Role.objects.filter(
        pk=role_id, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    ).first()
    if role is None:
        return CommandResult.fail("Role not found.")

    if role.name in settings.PROTECTED_ROLE_NAMES and name != role.name:
        raise PermissionDenied("You cannot rename this protected role.")

    duplicate = _workspace_role(actor, name)
    if duplicate is not None and duplicate.pk != role.pk:
        return CommandResult.fail(f"Role '{name}' already exists.")

    if permissions is not None:
        found, missing = _workspace_permissions(actor, permissions)
        if missing:
            return CommandResult.fail(f"Unknown permissions: {', '.join(missing)}")
        role.permissions.set(found)

    role.name = name
    role.save()
    logger.info("Role updated", extra={"role_id": role.pk, "actor_id": actor.user.pk})
    return CommandResult.ok({"role": role})


@transaction.atomic
def delete_role(actor: ActorContext, role_id: int) -> CommandResult:
    require(actor, MANAGE_ROLES)

    role = Role.objects.filter(
        pk=role_id, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    ).first()
    if role is None:
        return CommandResult.fail("Role not found.")
    if role.name in settings.PROTECTED_ROLE_NAMES:
        raise PermissionDenied("You cannot delete the main Admin role.")

    role.delete()
    clear_user_cache(actor.tenant)
    logger.info("Role deleted", extra={"role_id": role_id, "actor_id": actor.user.pk})
    return CommandResult.ok()


# =============================================================================
# Permissions
# =============================================================================

def _workspace_permission(actor: ActorContext, permission_id: int):
    return Permission.objects.filter(
        pk=permission_id, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    ).first()


def _permission_name_taken(actor: ActorContext, name: str, exclude_id=None) -> bool:
    qs = Permission.objects.filter(name=name, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id)
    if exclude_id is not None:
        qs = qs.exclude(pk=exclude_id)
    return qs.exists()


@transaction.atomic
def create_permission(actor: ActorContext, name: str, group_name: str = "") -> CommandResult:
    require(actor, MANAGE_PERMISSIONS)

    if _permission_name_taken(actor, name):
        return CommandResult.fail(f"Permission '{name}' already exists.")

    permission = Permission.objects.create(
        name=name,
        group_name=group_name,
        guard_name=actor.tenant.guard,
        tenant_id=actor.tenant.tenant_id,
    )
    logger.info("Permission created", extra={"permission_id": permission.pk, "actor_id": actor.user.pk})
    return CommandResult.ok({"permission": permission})


@transaction.atomic
def update_permission(actor: ActorContext, permission_id: int, name: str, group_name: str = None) -> CommandResult:
    require(actor, MANAGE_PERMISSIONS)

    permission = _workspace_permission(actor, permission_id)
    if permission is None:
        return CommandResult.fail("Permission not found.")
    if _permission_name_taken(actor, name, exclude_id=permission.pk):
        return CommandResult.fail(f"Permission '{name}' already exists.")

    permission.name = name
    if group_name is not None:
        permission.group_name = group_name
    permission.save()
    return CommandResult.ok({"permission": permission})


@transaction.atomic
def delete_permission(actor: ActorContext, permission_id: int) -> CommandResult:
    require(actor, MANAGE_PERMISSIONS)

    permission = _workspace_permission(actor, permission_id)
    if permission is None:
        return CommandResult.fail("Permission not found.")

    permission.delete()
    logger.info("Permission deleted", extra={"permission_id": permission_id, "actor_id": actor.user.pk})
    return CommandResult.ok()


@transaction.atomic
def bulk_delete_permissions(actor: ActorContext, ids) -> CommandResult:
    """Delete several permissions of the actor's workspace; unknown ids are ignored."""
    require(actor, MANAGE_PERMISSIONS)

    if not ids:
        return CommandResult.fail("No permission ids given.")

    qs = Permission.objects.filter(
        pk__in=ids, guard_name=actor.tenant.guard, tenant_id=actor.tenant.tenant_id
    )
    deleted = qs.count()
    qs.delete()
    logger.info("Permissions bulk deleted", extra={"count": deleted, "actor_id": actor.user.pk})
    return CommandResult.ok({"deleted": deleted})
