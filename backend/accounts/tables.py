# accounts/tables.py
"""
Table schemas for the access-control resources: users, roles, permissions.

Registered with the tables app on import (see AccountsConfig.ready).
"""
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from tables.exceptions import QueryValidationError
from tables.resources import PIN_ALWAYS, PinRule, ResourceSchema, date_range_clauses, register
from tables.search import Clause
from tenant.context import CENTRAL_GUARD, TENANT_GUARD

from .models import Permission, Role, User

STATUS_VALUES = {"active": True, "inactive": False}
SCOPE_GUARDS = {"CENTRAL": CENTRAL_GUARD, "TENANT": TENANT_GUARD}
DEFAULT_GROUP = "General"
DEFAULT_ROLE_LABEL = "Member"


def _display_datetime(value) -> str:
    if value is None:
        return ""
    return timezone.localtime(value).strftime("%Y-%m-%d %H:%M")


def _timestamp(value):
    return int(value.timestamp()) if value else None


def _scope_clause(filters: dict):
    if "scope" not in filters:
        return []
    scope = filters["scope"].upper()
    if scope not in SCOPE_GUARDS:
        raise QueryValidationError("scope must be 'CENTRAL' or 'TENANT'.", field="scope")
    return [Clause("guard_name", "eq", SCOPE_GUARDS[scope])]


class GuardScopedSchema(ResourceSchema):
    """Roles and permissions are additionally confined to the workspace guard."""

    def scope_clauses(self, context) -> list:
        return super().scope_clauses(context) + [Clause("guard_name", "eq", context.guard)]

    def record_queryset(self, context):
        return super().record_queryset(context).filter(guard_name=context.guard)


@register
class UserTableSchema(ResourceSchema):
    name = "users"
    title = "Users Report"
    model = User

    search_fields = ("name", "email")
    sortable = {
        "id": "id",
        "name": "name",
        "email": "email",
        "created_at": "date_joined",
    }
    default_sort = ("created_at", "desc")
    filter_params = ("status", "role", "date_from", "date_to")
    field_map = {"created_at": "date_joined"}

    index_searchable = ("name", "email")
    index_filterable = ("id", "tenant_id", "is_active", "role", "created_at")

    export_columns = [
        {"key": "serial_number", "header": "#", "width": 6, "numeric": True},
        {"key": "name", "header": "Name", "width": 25},
        {"key": "email", "header": "Email", "width": 32},
        {"key": "role", "header": "Role", "width": 18},
        {"key": "status", "header": "Status", "width": 12},
        {"key": "created_at", "header": "Joined Date", "width": 18},
    ]

    @property
    def pin(self):
        # The central super admin always leads the user list.
        return PinRule(identifier=settings.PROTECTED_USER_ID, scope=PIN_ALWAYS)

    def filter_clauses(self, filters: dict, context) -> list:
        clauses = []
        if "status" in filters:
            status = filters["status"].lower()
            if status not in STATUS_VALUES:
                raise QueryValidationError("status must be 'active' or 'inactive'.", field="status")
            clauses.append(Clause("is_active", "eq", STATUS_VALUES[status]))
        if "role" in filters:
            clauses.append(Clause("role", "eq", filters["role"]))
        return clauses + date_range_clauses(filters)

    def clause_q(self, clause: Clause):
        if clause.field == "role":
            return Q(roles__name=clause.value)
        return None

    def record_queryset(self, context):
        return super().record_queryset(context).prefetch_related("roles")

    def project(self, record) -> dict:
        role = record.primary_role
        return {
            "id": record.pk,
            "name": record.name,
            "email": record.email,
            "role": role.name if role else DEFAULT_ROLE_LABEL,
            "status": "Active" if record.is_active else "Inactive",
            "is_active": record.is_active,
            "created_at": _display_datetime(record.date_joined),
        }

    def to_document(self, record) -> dict:
        role = record.primary_role
        return {
            "id": record.pk,
            "name": record.name,
            "email": record.email,
            "role": role.name if role else None,
            "is_active": record.is_active,
            "tenant_id": record.tenant_id,
            "created_at": _timestamp(record.date_joined),
        }


@register
class RoleTableSchema(GuardScopedSchema):
    name = "roles"
    title = "Roles Report"
    model = Role

    search_fields = ("name",)
    sortable = {
        "id": "id",
        "name": "name",
        "created_at": "created_at",
    }
    default_sort = ("created_at", "desc")
    filter_params = ("scope", "date_from", "date_to")

    index_searchable = ("name",)
    index_filterable = ("id", "tenant_id", "guard_name", "created_at")

    export_columns = [
        {"key": "serial_number", "header": "#", "width": 6, "numeric": True},
        {"key": "name", "header": "Role Name", "width": 25},
        {"key": "permissions", "header": "Permissions", "width": 60},
        {"key": "created_at", "header": "Created At", "width": 18},
    ]

    def filter_clauses(self, filters: dict, context) -> list:
        return _scope_clause(filters) + date_range_clauses(filters)

    def record_queryset(self, context):
        return super().record_queryset(context).prefetch_related("permissions")

    def project(self, record) -> dict:
        names = sorted(permission.name for permission in record.permissions.all())
        return {
            "id": record.pk,
            "name": record.name,
            "guard_name": record.guard_name,
            "scope": "TENANT" if record.guard_name == TENANT_GUARD else "CENTRAL",
            "permissions": ", ".join(names),
            "permissions_count": len(names),
            "created_at": _display_datetime(record.created_at),
        }

    def to_document(self, record) -> dict:
        return {
            "id": record.pk,
            "name": record.name,
            "guard_name": record.guard_name,
            "tenant_id": record.tenant_id,
            "created_at": _timestamp(record.created_at),
        }


@register
class PermissionTableSchema(GuardScopedSchema):
    name = "permissions"
    title = "Permissions Report"
    model = Permission

    search_fields = ("name", "group_name")
    sortable = {
        "id": "id",
        "name": "name",
        "group": "group_name",
        "created_at": "created_at",
    }
    default_sort = ("created_at", "desc")
    filter_params = ("scope", "group", "date_from", "date_to")
    field_map = {"group": "group_name"}

    index_searchable = ("name", "group")
    index_filterable = ("id", "tenant_id", "guard_name", "group", "created_at")

    export_columns = [
        {"key": "serial_number", "header": "#", "width": 6, "numeric": True},
        {"key": "name", "header": "Name", "width": 30},
        {"key": "group", "header": "Group", "width": 20},
        {"key": "created_at", "header": "Created At", "width": 18},
    ]

    def filter_clauses(self, filters: dict, context) -> list:
        clauses = _scope_clause(filters)
        if "group" in filters:
            clauses.append(Clause("group", "eq", filters["group"]))
        return clauses + date_range_clauses(filters)

    def clause_q(self, clause: Clause):
        # Ungrouped permissions are listed (and filtered) as "General".
        if clause.field == "group" and clause.value == DEFAULT_GROUP:
            return Q(group_name="") | Q(group_name=DEFAULT_GROUP)
        return None

    def project(self, record) -> dict:
        return {
            "id": record.pk,
            "name": record.name,
            "guard_name": record.guard_name,
            "scope": "TENANT" if record.guard_name == TENANT_GUARD else "CENTRAL",
            "group": record.group_name or DEFAULT_GROUP,
            "created_at": _display_datetime(record.created_at),
        }

    def to_document(self, record) -> dict:
        return {
            "id": record.pk,
            "name": record.name,
            "group": record.group_name or DEFAULT_GROUP,
            "guard_name": record.guard_name,
            "tenant_id": record.tenant_id,
            "created_at": _timestamp(record.created_at),
        }
