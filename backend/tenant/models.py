"""
Tenant registry - maps hostnames to tenant workspaces.

Design Principles:
- Lives in the shared database; no per-tenant connection settings
- Unknown hosts resolve to nothing (the workspace-not-found case)
- Central domains are configured in settings, not stored here
"""
from django.db import models


class Tenant(models.Model):
    """A tenant workspace, identified by a short slug (e.g. "acme")."""

    id = models.SlugField(primary_key=True, max_length=64)
    name = models.CharField(max_length=150)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "tenant_tenant"
        ordering = ["id"]

    def __str__(self):
        return self.id


class Domain(models.Model):
    """A hostname that serves a tenant workspace (e.g. "acme.localhost")."""

    domain = models.CharField(max_length=255, unique=True)
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.CASCADE,
        related_name="domains",
    )

    class Meta:
        db_table = "tenant_domain"

    def __str__(self):
        return self.domain
