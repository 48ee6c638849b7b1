# tests/conftest.py
"""
Pytest fixtures for Hive tests.

- Central workspace: host "testserver" (settings.CENTRAL_DOMAINS)
- Tenant workspace: tenant "acme" served on "acme.localhost"
- The protected super admin always has pk=settings.PROTECTED_USER_ID
"""

import pytest
from django.conf import settings as django_settings
from django.core.cache import cache
from rest_framework.test import APIClient

from accounts.commands import MANAGE_PERMISSIONS, MANAGE_ROLES, MANAGE_USERS
from accounts.models import Permission, Role, User
from tenant.context import CENTRAL_GUARD, TENANT_GUARD, TenantContext
from tenant.models import Domain, Tenant

TENANT_HOST = "acme.localhost"


@pytest.fixture(autouse=True)
def _tables_settings(settings):
    """Tests always run against the database provider with the built-in pin rules."""
    settings.TABLES = {**django_settings.TABLES, "SEARCH_BACKEND": "database", "PIN_TO_TOP": {}}


@pytest.fixture(autouse=True)
def _clear_cache():
    """User stats and login throttling live in the cache, which outlives the DB rollback."""
    cache.clear()
    yield
    cache.clear()


# =============================================================================
# Workspaces
# =============================================================================

@pytest.fixture
def central_context():
    return TenantContext.central("testserver")


@pytest.fixture
def tenant(db):
    tenant = Tenant.objects.create(id="acme", name="Acme Inc")
    Domain.objects.create(domain=TENANT_HOST, tenant=tenant)
    return tenant


@pytest.fixture
def tenant_context(tenant):
    return TenantContext.for_tenant(tenant.id, TENANT_HOST)


# =============================================================================
# Roles & permissions
# =============================================================================

def _permissions(guard, tenant=None):
    return [
        Permission.objects.create(name=name, guard_name=guard, tenant=tenant, group_name="Access Control")
        for name in (MANAGE_USERS, MANAGE_ROLES, MANAGE_PERMISSIONS)
    ]


@pytest.fixture
def central_permissions(db):
    return _permissions(CENTRAL_GUARD)


@pytest.fixture
def super_admin_role(db):
    return Role.objects.create(name=django_settings.SUPER_ADMIN_ROLE, guard_name=CENTRAL_GUARD)


@pytest.fixture
def support_role(db):
    """A central role without any access-control permission."""
    return Role.objects.create(name="Support", guard_name=CENTRAL_GUARD)


@pytest.fixture
def user_manager_role(db, central_permissions):
    role = Role.objects.create(name="User Manager", guard_name=CENTRAL_GUARD)
    role.permissions.set([p for p in central_permissions if p.name == MANAGE_USERS])
    return role


@pytest.fixture
def tenant_admin_role(tenant):
    role = Role.objects.create(name="Admin", guard_name=TENANT_GUARD, tenant=tenant)
    role.permissions.set(_permissions(TENANT_GUARD, tenant))
    return role


@pytest.fixture
def tenant_employee_role(tenant):
    return Role.objects.create(name="Employee", guard_name=TENANT_GUARD, tenant=tenant)


# =============================================================================
# Users
# =============================================================================

@pytest.fixture
def make_user(db):
    """Factory: make_user(email, name=..., tenant=None, roles=(), is_active=True)."""
    def _make(email, name=None, tenant=None, roles=(), password="testpass123", **extra):
        user = User.objects.create_user(
            email=email,
            password=password,
            name=name or email.split("@")[0].title(),
            tenant=tenant,
            **extra,
        )
        if roles:
            user.roles.set(roles)
        return user
    return _make


@pytest.fixture
def super_admin(make_user, super_admin_role):
    """The protected central super admin."""
    return make_user(
        "super@hive.test",
        name="Hive Overlord",
        roles=[super_admin_role],
        id=django_settings.PROTECTED_USER_ID,
    )


@pytest.fixture
def central_users(make_user, super_admin, support_role):
    """Three ordinary central users besides the super admin."""
    return [
        make_user("ada@hive.test", name="Ada Lovelace", roles=[support_role]),
        make_user("grace@hive.test", name="Grace Hopper", roles=[support_role]),
        make_user("linus@hive.test", name="Linus Torvalds", roles=[support_role], is_active=False),
    ]


@pytest.fixture
def tenant_admin(make_user, tenant, tenant_admin_role):
    return make_user("admin@acme.test", name="Acme Admin", tenant=tenant, roles=[tenant_admin_role])


@pytest.fixture
def tenant_employee(make_user, tenant, tenant_employee_role):
    return make_user("wile@acme.test", name="Wile E. Coyote", tenant=tenant, roles=[tenant_employee_role])


# =============================================================================
# API clients
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def admin_client(super_admin):
    """Central API client authenticated as the super admin."""
    client = APIClient()
    client.force_authenticate(user=super_admin)
    return client


@pytest.fixture
def tenant_client(tenant_admin):
    """Tenant API client (host acme.localhost) authenticated as the tenant admin."""
    client = APIClient(HTTP_HOST=TENANT_HOST)
    client.force_authenticate(user=tenant_admin)
    return client
