# accounts/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: validation, protected targets, cache invalidation.

Listing and exporting use the generic table views; this module only binds
them to the users, roles and permissions schemas.
"""

from django.http import Http404
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import RefreshToken

from accounts.authz import resolve_actor
from tables.resources import get_schema
from tables.views import ResourceExportView, ResourceListView

from . import commands
from .serializers import (
    BulkIdsSerializer,
    EmailTokenObtainPairSerializer,
    PermissionInputSerializer,
    PermissionSerializer,
    RoleInputSerializer,
    RoleSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .throttles import LoginThrottle


def _failed(result):
    return Response({"detail": result.error}, status=status.HTTP_400_BAD_REQUEST)


def _workspace_object(actor, schema_name, pk):
    """Fetch a record through the schema's tenant-scoped queryset or 404."""
    record = get_schema(schema_name).record_queryset(actor.tenant).filter(pk=pk).first()
    if record is None:
        raise Http404
    return record


# =============================================================================
# Authentication
# =============================================================================

class LoginView(generics.GenericAPIView):
    serializer_class = EmailTokenObtainPairSerializer
    permission_classes = [permissions.AllowAny]
    throttle_classes = [LoginThrottle]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return Response(
            {"message": "Login successful", **serializer.validated_data},
            status=status.HTTP_200_OK,
        )


class LogoutView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        refresh_token = request.data.get("refresh")
        if not refresh_token:
            return Response({"detail": "Refresh token required"}, status=status.HTTP_400_BAD_REQUEST)
        try:
            token = RefreshToken(refresh_token)
            token.blacklist()
        except TokenError:
            return Response({"detail": "Invalid token"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(status=status.HTTP_204_NO_CONTENT)


class CurrentUserView(APIView):
    """GET /api/user/ -> the authenticated user and their workspace."""

    def get(self, request):
        actor = resolve_actor(request)
        return Response({
            "user": UserSerializer(actor.user).data,
            "roles": sorted(actor.roles),
            "permissions": sorted(actor.perms),
            "meta": {
                "context": actor.tenant.label,
                "guard": actor.tenant.guard,
                "type": actor.tenant.user_type,
            },
        })


# =============================================================================
# Users
# =============================================================================

class UserListCreateView(ResourceListView):
    """
    GET /api/users/ -> users table page (meta.stats carries cached counts)
    POST /api/users/ -> create user
    """
    schema_name = "users"

    def extra_meta(self, actor) -> dict:
        return {"stats": commands.user_stats(actor.tenant)}

    def post(self, request):
        actor = resolve_actor(request)

        input_serializer = UserCreateSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.create_user(actor, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response(UserSerializer(result.data["user"]).data, status=status.HTTP_201_CREATED)


class UserDetailView(APIView):
    """
    GET /api/users/<pk>/ -> retrieve user
    PUT/PATCH /api/users/<pk>/ -> update user
    DELETE /api/users/<pk>/ -> delete user
    """

    def get(self, request, pk):
        actor = resolve_actor(request)
        user = _workspace_object(actor, "users", pk)
        return Response(UserSerializer(user).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        user = _workspace_object(actor, "users", pk)

        input_serializer = UserUpdateSerializer(data=request.data, partial=True)
        input_serializer.is_valid(raise_exception=True)

        result = commands.update_user(actor, user.pk, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response({
            "user": UserSerializer(result.data["user"]).data,
            "changes": sorted(result.data["changes"]),
        })

    put = patch

    def delete(self, request, pk):
        actor = resolve_actor(request)
        user = _workspace_object(actor, "users", pk)

        result = commands.delete_user(actor, user.pk)
        if not result.success:
            return _failed(result)

        return Response({"message": "User deleted successfully"})


class UserToggleStatusView(APIView):
    """POST /api/users/<pk>/toggle-status/"""

    def post(self, request, pk):
        actor = resolve_actor(request)
        user = _workspace_object(actor, "users", pk)

        result = commands.toggle_user_status(actor, user.pk)
        if not result.success:
            return _failed(result)

        return Response({
            "message": f"User has been {result.data['status']} successfully.",
            "user": UserSerializer(result.data["user"]).data,
        })


class UserExportView(ResourceExportView):
    """GET /api/users/export/?type=..."""
    schema_name = "users"


# =============================================================================
# Roles
# =============================================================================

class RoleListCreateView(ResourceListView):
    """
    GET /api/roles/ -> roles table page
    POST /api/roles/ -> create role with permissions (by name)
    """
    schema_name = "roles"

    def post(self, request):
        actor = resolve_actor(request)

        input_serializer = RoleInputSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.create_role(actor, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response(
            {
                "meta": {"message": f"Role created for {actor.tenant.guard} guard"},
                "role": RoleSerializer(result.data["role"]).data,
            },
            status=status.HTTP_201_CREATED,
        )


class RoleDetailView(APIView):
    """
    GET /api/roles/<pk>/
    PUT /api/roles/<pk>/ -> rename / sync permissions
    DELETE /api/roles/<pk>/
    """

    def get(self, request, pk):
        actor = resolve_actor(request)
        role = _workspace_object(actor, "roles", pk)
        return Response(RoleSerializer(role).data)

    def put(self, request, pk):
        actor = resolve_actor(request)
        role = _workspace_object(actor, "roles", pk)

        input_serializer = RoleInputSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.update_role(actor, role.pk, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response({
            "message": "Role updated successfully",
            "role": RoleSerializer(result.data["role"]).data,
        })

    patch = put

    def delete(self, request, pk):
        actor = resolve_actor(request)
        role = _workspace_object(actor, "roles", pk)

        result = commands.delete_role(actor, role.pk)
        if not result.success:
            return _failed(result)

        return Response({"message": "Role deleted successfully"})


class RoleExportView(ResourceExportView):
    """GET /api/roles/export/?type=..."""
    schema_name = "roles"


# =============================================================================
# Permissions
# =============================================================================

class PermissionListCreateView(ResourceListView):
    """
    GET /api/permissions/ -> permissions table page
    POST /api/permissions/ -> create permission
    """
    schema_name = "permissions"

    def post(self, request):
        actor = resolve_actor(request)

        input_serializer = PermissionInputSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.create_permission(actor, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response(
            {
                "message": "Permission created successfully",
                "permission": PermissionSerializer(result.data["permission"]).data,
            },
            status=status.HTTP_201_CREATED,
        )


class PermissionDetailView(APIView):
    """
    GET /api/permissions/<pk>/
    PUT /api/permissions/<pk>/
    DELETE /api/permissions/<pk>/
    """

    def get(self, request, pk):
        actor = resolve_actor(request)
        permission = _workspace_object(actor, "permissions", pk)
        return Response(PermissionSerializer(permission).data)

    def put(self, request, pk):
        actor = resolve_actor(request)
        permission = _workspace_object(actor, "permissions", pk)

        input_serializer = PermissionInputSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.update_permission(actor, permission.pk, **input_serializer.validated_data)
        if not result.success:
            return _failed(result)

        return Response({
            "message": "Permission updated successfully",
            "permission": PermissionSerializer(result.data["permission"]).data,
        })

    patch = put

    def delete(self, request, pk):
        actor = resolve_actor(request)
        permission = _workspace_object(actor, "permissions", pk)

        result = commands.delete_permission(actor, permission.pk)
        if not result.success:
            return _failed(result)

        return Response({"message": "Permission deleted successfully"})


class PermissionBulkDeleteView(APIView):
    """DELETE /api/permissions/bulk/ with {"ids": [...]}"""

    def delete(self, request):
        actor = resolve_actor(request)

        input_serializer = BulkIdsSerializer(data=request.data)
        input_serializer.is_valid(raise_exception=True)

        result = commands.bulk_delete_permissions(actor, input_serializer.validated_data["ids"])
        if not result.success:
            return _failed(result)

        return Response({
            "message": f"{result.data['deleted']} permissions deleted successfully",
            "deleted": result.data["deleted"],
        })


class PermissionExportView(ResourceExportView):
    """GET /api/permissions/export/?type=..."""
    schema_name = "permissions"
