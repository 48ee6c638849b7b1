# tests/test_accounts.py
"""
Users, roles and permissions: commands, protections and the HTTP surface.
"""

import pytest
from django.core.exceptions import PermissionDenied
from rest_framework.test import APIClient

from accounts import commands
from accounts.authz import resolve_actor
from accounts.models import Permission, Role, User
from tenant.context import TenantContext

pytestmark = pytest.mark.django_db


class _Request:
    def __init__(self, user, tenant=None):
        self.user = user
        self.tenant = tenant


@pytest.fixture
def actor(super_admin, central_context):
    return resolve_actor(_Request(super_admin, central_context))


# =============================================================================
# Actor resolution
# =============================================================================

def test_admin_roles_hold_every_permission(actor):
    assert actor.is_admin
    assert actor.is_super_admin
    assert actor.has(commands.MANAGE_ROLES)


def test_permissions_come_from_roles(make_user, user_manager_role, central_context):
    manager = make_user("manager@hive.test", roles=[user_manager_role])

    actor = resolve_actor(_Request(manager, central_context))

    assert actor.has(commands.MANAGE_USERS)
    assert not actor.has(commands.MANAGE_ROLES)


def test_roles_of_other_guards_are_ignored(make_user, tenant, tenant_context):
    # A tenant user holding a central role gains nothing from it in the tenant.
    central_admin = Role.objects.create(name="Admin", guard_name="web")
    user = make_user("mixed@acme.test", tenant=tenant, roles=[central_admin])

    actor = resolve_actor(_Request(user, tenant_context))

    assert actor.roles == frozenset()
    assert not actor.has(commands.MANAGE_USERS)


def test_actor_must_belong_to_workspace(super_admin, tenant_context):
    with pytest.raises(PermissionDenied):
        resolve_actor(_Request(super_admin, tenant_context))


# =============================================================================
# User commands
# =============================================================================

def test_create_user(actor, support_role):
    result = commands.create_user(actor, name="New Person", email="new@hive.test", role="Support")

    assert result.success
    user = result.data["user"]
    assert user.tenant_id is None
    assert user.primary_role == support_role
    assert user.has_usable_password()


def test_create_user_rejects_duplicate_email(actor, central_users, support_role):
    result = commands.create_user(actor, name="Ada Again", email="ADA@hive.test", role="Support")

    assert not result.success
    assert "already exists" in result.error


def test_create_user_rejects_unknown_role(actor):
    result = commands.create_user(actor, name="Nobody", email="nobody@hive.test", role="Wizard")

    assert not result.success


def test_cannot_create_super_admin(actor, super_admin_role):
    with pytest.raises(PermissionDenied):
        commands.create_user(actor, name="Evil", email="evil@hive.test", role="Super Admin")


def test_user_stats_are_cached_and_invalidated(actor, central_context, support_role):
    before = commands.user_stats(central_context)

    commands.create_user(actor, name="Counted", email="counted@hive.test", role="Support")

    assert commands.user_stats(central_context)["total_users"] == before["total_users"] + 1


def test_update_user_reports_changes(actor, central_users):
    ada = central_users[0]
    Role.objects.create(name="Auditor", guard_name="web")

    result = commands.update_user(actor, ada.pk, name="Ada King", role="Auditor", password="newpass123")

    assert result.success
    assert set(result.data["changes"]) == {"name", "role", "password"}
    ada.refresh_from_db()
    assert ada.name == "Ada King"
    assert ada.primary_role.name == "Auditor"
    assert ada.check_password("newpass123")


def test_update_user_rejects_taken_email(actor, central_users):
    result = commands.update_user(actor, central_users[0].pk, email="grace@hive.test")

    assert not result.success
    central_users[0].refresh_from_db()
    assert central_users[0].email == "ada@hive.test"


def test_cannot_assign_super_admin(actor, central_users, super_admin_role):
    with pytest.raises(PermissionDenied):
        commands.update_user(actor, central_users[0].pk, role="Super Admin")


@pytest.mark.parametrize("command", [commands.delete_user, commands.toggle_user_status])
def test_protected_user_cannot_be_deleted_or_deactivated(actor, super_admin, command):
    with pytest.raises(PermissionDenied):
        command(actor, super_admin.pk)

    super_admin.refresh_from_db()
    assert super_admin.is_active


def test_toggle_user_status(actor, central_users):
    ada = central_users[0]

    result = commands.toggle_user_status(actor, ada.pk)

    assert result.data["status"] == "deactivated"
    ada.refresh_from_db()
    assert not ada.is_active
    assert commands.toggle_user_status(actor, ada.pk).data["status"] == "activated"


def test_missing_permission_is_denied(make_user, support_role, central_context, central_users):
    support = make_user("support@hive.test", roles=[support_role])
    actor = resolve_actor(_Request(support, central_context))

    with pytest.raises(PermissionDenied):
        commands.delete_user(actor, central_users[0].pk)


def test_users_of_other_workspaces_are_not_found(actor, tenant_employee):
    result = commands.delete_user(actor, tenant_employee.pk)

    assert not result.success
    assert User.objects.filter(pk=tenant_employee.pk).exists()


# =============================================================================
# Role & permission commands
# =============================================================================

def test_create_role_with_permissions(actor, central_permissions):
    result = commands.create_role(actor, name="Editors", permissions=[commands.MANAGE_USERS, commands.MANAGE_ROLES])

    assert result.success
    role = result.data["role"]
    assert role.guard_name == "web"
    assert sorted(p.name for p in role.permissions.all()) == [commands.MANAGE_ROLES, commands.MANAGE_USERS]


def test_create_role_rejects_unknown_permission(actor, central_permissions):
    result = commands.create_role(actor, name="Editors", permissions=["fly"])

    assert not result.success
    assert "fly" in result.error
    assert not Role.objects.filter(name="Editors").exists()


def test_update_role_replaces_permissions(actor, user_manager_role, central_permissions):
    result = commands.update_role(actor, user_manager_role.pk, name="People", permissions=[commands.MANAGE_ROLES])

    assert result.success
    user_manager_role.refresh_from_db()
    assert user_manager_role.name == "People"
    assert [p.name for p in user_manager_role.permissions.all()] == [commands.MANAGE_ROLES]


def test_protected_role_cannot_be_renamed_or_deleted(actor, super_admin_role):
    with pytest.raises(PermissionDenied):
        commands.update_role(actor, super_admin_role.pk, name="Overlords")
    with pytest.raises(PermissionDenied):
        commands.delete_role(actor, super_admin_role.pk)


def test_protected_role_permissions_can_change(actor, super_admin_role, central_permissions):
    result = commands.update_role(
        actor, super_admin_role.pk, name=super_admin_role.name, permissions=[commands.MANAGE_USERS]
    )

    assert result.success


def test_permission_lifecycle(actor):
    created = commands.create_permission(actor, name="export reports", group_name="Reports")
    assert created.success
    assert not commands.create_permission(actor, name="export reports").success

    permission = created.data["permission"]
    updated = commands.update_permission(actor, permission.pk, name="export all reports")
    assert updated.success
    assert updated.data["permission"].group_name == "Reports"

    assert commands.delete_permission(actor, permission.pk).success
    assert not Permission.objects.filter(pk=permission.pk).exists()


def test_bulk_delete_only_touches_own_guard(actor, central_permissions, tenant_admin_role):
    tenant_permission = tenant_admin_role.permissions.first()
    ids = [central_permissions[0].pk, central_permissions[1].pk, tenant_permission.pk]

    result = commands.bulk_delete_permissions(actor, ids)

    assert result.data == {"deleted": 2}
    assert Permission.objects.filter(pk=tenant_permission.pk).exists()


# =============================================================================
# HTTP surface
# =============================================================================

def test_create_user_endpoint(admin_client, support_role):
    response = admin_client.post(
        "/api/users/",
        {"name": "Posted", "email": "posted@hive.test", "role": "Support", "password": "password123"},
        format="json",
    )

    assert response.status_code == 201
    assert response.data["role"] == "Support"
    assert response.data["email"] == "posted@hive.test"


def test_create_user_endpoint_validates_input(admin_client):
    response = admin_client.post("/api/users/", {"name": "x", "email": "not-an-email"}, format="json")

    assert response.status_code == 400
    assert "email" in response.data
    assert "role" in response.data


def test_protected_user_endpoints_are_forbidden(admin_client, super_admin):
    assert admin_client.patch(f"/api/users/{super_admin.pk}/", {"name": "Renamed"}, format="json").status_code == 403
    assert admin_client.post(f"/api/users/{super_admin.pk}/toggle-status/").status_code == 403
    assert admin_client.delete(f"/api/users/{super_admin.pk}/").status_code == 403


def test_update_and_delete_user_endpoints(admin_client, central_users):
    grace = central_users[1]

    updated = admin_client.patch(f"/api/users/{grace.pk}/", {"name": "Amazing Grace"}, format="json")
    assert updated.status_code == 200
    assert updated.data["changes"] == ["name"]

    deleted = admin_client.delete(f"/api/users/{grace.pk}/")
    assert deleted.data == {"message": "User deleted successfully"}
    assert admin_client.get(f"/api/users/{grace.pk}/").status_code == 404


def test_toggle_status_endpoint(admin_client, central_users):
    response = admin_client.post(f"/api/users/{central_users[0].pk}/toggle-status/")

    assert response.status_code == 200
    assert response.data["message"] == "User has been deactivated successfully."
    assert response.data["user"]["is_active"] is False


def test_role_endpoints(tenant_client, tenant_admin_role):
    created = tenant_client.post("/api/roles/", {"name": "Auditor", "permissions": ["manage users"]}, format="json")
    assert created.status_code == 201
    assert created.data["meta"]["message"] == "Role created for tenant guard"
    assert created.data["role"]["guard_name"] == "tenant"

    admin_delete = tenant_client.delete(f"/api/roles/{tenant_admin_role.pk}/")
    assert admin_delete.status_code == 403


def test_permission_bulk_delete_endpoint(admin_client, central_permissions):
    ids = [p.pk for p in central_permissions]

    response = admin_client.delete("/api/permissions/bulk/", {"ids": ids}, format="json")

    assert response.status_code == 200
    assert response.data["deleted"] == 3


def test_current_user_endpoint(tenant_client, tenant_admin):
    response = tenant_client.get("/api/user/")

    assert response.data["user"]["email"] == tenant_admin.email
    assert response.data["roles"] == ["Admin"]
    assert response.data["meta"]["guard"] == "tenant"


# =============================================================================
# Login
# =============================================================================

def test_login_returns_tokens(api_client, super_admin):
    response = api_client.post("/api/login/", {"email": "super@hive.test", "password": "testpass123"}, format="json")

    assert response.status_code == 200
    assert response.data["message"] == "Login successful"
    assert response.data["access"]
    assert response.data["refresh"]
    assert response.data["user"]["id"] == super_admin.pk


def test_login_with_bad_password(api_client, super_admin):
    response = api_client.post("/api/login/", {"email": "super@hive.test", "password": "wrong"}, format="json")

    assert response.status_code == 401


def test_login_is_throttled_per_email(api_client, super_admin, central_users):
    for _ in range(10):
        api_client.post("/api/login/", {"email": "super@hive.test", "password": "wrong"}, format="json")

    blocked = api_client.post("/api/login/", {"email": "SUPER@hive.test", "password": "wrong"}, format="json")
    other = api_client.post("/api/login/", {"email": "ada@hive.test", "password": "wrong"}, format="json")

    assert blocked.status_code == 429
    assert other.status_code == 401


def test_deactivated_user_is_told_so(api_client, super_admin, central_users):
    linus = central_users[2]

    response = api_client.post("/api/login/", {"email": linus.email, "password": "testpass123"}, format="json")

    assert response.status_code == 403
    assert "deactivated" in response.data["detail"]


def test_login_is_confined_to_workspace(super_admin, tenant_admin):
    client = APIClient()

    response = client.post("/api/login/", {"email": tenant_admin.email, "password": "testpass123"}, format="json")

    assert response.status_code == 401


def test_login_in_tenant_workspace(super_admin, tenant_admin):
    client = APIClient(HTTP_HOST="acme.localhost")

    response = client.post("/api/login/", {"email": tenant_admin.email, "password": "testpass123"}, format="json")

    assert response.status_code == 200


def test_token_refresh_and_authenticated_call(api_client, super_admin):
    login = api_client.post("/api/login/", {"email": "super@hive.test", "password": "testpass123"}, format="json")

    refreshed = api_client.post("/api/auth/refresh/", {"refresh": login.data["refresh"]}, format="json")
    assert refreshed.status_code == 200

    api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {refreshed.data['access']}")
    assert api_client.get("/api/user/").status_code == 200


def test_central_context_default():
    assert TenantContext.central().label == "Central (localhost)"
