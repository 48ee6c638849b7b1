# accounts/urls.py
"""
URL configuration for the accounts API.

Endpoints:
- /login/, /logout/, /auth/refresh/, /user/ - Authentication
- /users/ - User management and export
- /roles/ - Role management and export
- /permissions/ - Permission management and export
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from .views import (
    # Auth
    LoginView,
    LogoutView,
    CurrentUserView,
    # Users
    UserListCreateView,
    UserDetailView,
    UserToggleStatusView,
    UserExportView,
    # Roles
    RoleListCreateView,
    RoleDetailView,
    RoleExportView,
    # Permissions
    PermissionListCreateView,
    PermissionDetailView,
    PermissionBulkDeleteView,
    PermissionExportView,
)

app_name = "accounts"

urlpatterns = [
    # ==========================================================================
    # Authentication
    # ==========================================================================
    path("login/", LoginView.as_view(), name="login"),
    path("logout/", LogoutView.as_view(), name="logout"),
    path("auth/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
    path("user/", CurrentUserView.as_view(), name="current-user"),

    # ==========================================================================
    # Users
    # ==========================================================================
    path("users/", UserListCreateView.as_view(), name="user-list"),
    path("users/export/", UserExportView.as_view(), name="user-export"),
    path("users/<int:pk>/", UserDetailView.as_view(), name="user-detail"),
    path("users/<int:pk>/toggle-status/", UserToggleStatusView.as_view(), name="user-toggle-status"),

    # ==========================================================================
    # Roles
    # ==========================================================================
    path("roles/", RoleListCreateView.as_view(), name="role-list"),
    path("roles/export/", RoleExportView.as_view(), name="role-export"),
    path("roles/<int:pk>/", RoleDetailView.as_view(), name="role-detail"),

    # ==========================================================================
    # Permissions
    # ==========================================================================
    path("permissions/", PermissionListCreateView.as_view(), name="permission-list"),
    path("permissions/export/", PermissionExportView.as_view(), name="permission-export"),
    path("permissions/bulk/", PermissionBulkDeleteView.as_view(), name="permission-bulk-delete"),
    path("permissions/<int:pk>/", PermissionDetailView.as_view(), name="permission-detail"),
]
