"""
Django Admin registration for Tenant models.
"""
from django.contrib import admin

from tenant.models import Tenant, Domain


class DomainInline(admin.TabularInline):
    model = Domain
    extra = 0


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["id", "name", "domains__domain"]
    inlines = [DomainInline]
