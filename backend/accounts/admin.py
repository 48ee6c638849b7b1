from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as DjangoUserAdmin

from .models import Permission, Role, User


@admin.register(User)
class UserAdmin(DjangoUserAdmin):
    fieldsets = (
        (None, {"fields": ("email", "password", "name", "tenant")}),
        ("Access", {"fields": ("is_active", "is_staff", "is_superuser", "roles")}),
        ("Important dates", {"fields": ("last_login", "date_joined")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "name", "tenant", "password1", "password2")}),
    )
    list_display = ("email", "name", "tenant", "is_active")
    list_filter = ("is_active", "tenant")
    search_fields = ("email", "name")
    ordering = ("email",)
    filter_horizontal = ("roles",)


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ("name", "guard_name", "tenant", "created_at")
    list_filter = ("guard_name",)
    search_fields = ("name",)
    filter_horizontal = ("permissions",)


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ("name", "group_name", "guard_name", "tenant")
    list_filter = ("guard_name", "group_name")
    search_fields = ("name", "group_name")
