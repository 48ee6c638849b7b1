# accounts/management/commands/seed_access_control.py

from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import transaction

from accounts.commands import MANAGE_PERMISSIONS, MANAGE_ROLES, MANAGE_USERS
from accounts.models import Permission, Role, User
from tenant.context import CENTRAL_GUARD, TENANT_GUARD
from tenant.models import Domain, Tenant

ACCESS_PERMISSIONS = [
    (MANAGE_USERS, "Access Control"),
    (MANAGE_ROLES, "Access Control"),
    (MANAGE_PERMISSIONS, "Access Control"),
]

CENTRAL_PERMISSIONS = ACCESS_PERMISSIONS + [
    ("manage tenants", "Tenancy"),
    ("view dashboard", "General"),
]
# role -> permission names (None: every permission of the guard)
CENTRAL_ROLES = {
    settings.SUPER_ADMIN_ROLE: None,
    "Support": ["view dashboard"],
}

TENANT_PERMISSIONS = ACCESS_PERMISSIONS + [
    ("create invoice", "Invoices"),
    ("delete invoice", "Invoices"),
    ("manage employees", "Employees"),
]
TENANT_ROLES = {
    "Admin": None,
    "Manager": ["create invoice", "manage employees"],
    "Employee": ["create invoice"],
}


class Command(BaseCommand):
    help = "Seed roles, permissions and admin users for the central workspace and optional tenants"

    def add_arguments(self, parser):
        parser.add_argument(
            "--tenant",
            action="append",
            default=[],
            metavar="ID:NAME",
            help="Tenant to create, e.g. --tenant apple:'Apple Inc' (repeatable)",
        )
        parser.add_argument("--password", default="password", help="Password for the seeded admin users")
        parser.add_argument("--domain-suffix", default="localhost")

    @transaction.atomic
    def handle(self, *args, **options):
        password = options["password"]

        self._seed_guard(CENTRAL_GUARD, None, CENTRAL_PERMISSIONS, CENTRAL_ROLES)
        super_admin, created = User.objects.get_or_create(
            pk=settings.PROTECTED_USER_ID,
            defaults={"email": "super@hive.test", "name": "Hive Overlord", "is_active": True},
        )
        if created:
            super_admin.set_password(password)
            super_admin.save(update_fields=["password"])
        super_admin.roles.add(Role.objects.get(
            name=settings.SUPER_ADMIN_ROLE, guard_name=CENTRAL_GUARD, tenant__isnull=True
        ))
        self.stdout.write(f"Central workspace: super admin {super_admin.email}")

        for entry in options["tenant"]:
            tenant_id, _, name = entry.partition(":")
            tenant, _ = Tenant.objects.get_or_create(id=tenant_id, defaults={"name": name or tenant_id})
            domain = f"{tenant_id}.{options['domain_suffix']}"
            Domain.objects.get_or_create(domain=domain, defaults={"tenant": tenant})

            self._seed_guard(TENANT_GUARD, tenant, TENANT_PERMISSIONS, TENANT_ROLES)
            admin, created = User.objects.get_or_create(
                email=f"admin@{tenant_id}.test",
                defaults={"name": f"{tenant.name} Admin", "tenant": tenant, "is_active": True},
            )
            if created:
                admin.set_password(password)
                admin.save(update_fields=["password"])
            admin.roles.add(Role.objects.get(name="Admin", guard_name=TENANT_GUARD, tenant=tenant))
            self.stdout.write(f"Tenant {tenant_id}: {domain}, admin {admin.email}")

        self.stdout.write(self.style.SUCCESS("Done!"))

    def _seed_guard(self, guard, tenant, permissions, roles):
        for name, group in permissions:
            Permission.objects.get_or_create(
                name=name, guard_name=guard, tenant=tenant, defaults={"group_name": group}
            )
        available = Permission.objects.filter(guard_name=guard, tenant=tenant)
        for role_name, granted in roles.items():
            role, _ = Role.objects.get_or_create(name=role_name, guard_name=guard, tenant=tenant)
            role.permissions.add(*(available if granted is None else available.filter(name__in=granted)))
