from django.contrib.auth import authenticate
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed, PermissionDenied
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .models import Permission, Role, User


class PermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Permission
        fields = ("id", "name", "guard_name", "group_name", "created_at")


class RoleSerializer(serializers.ModelSerializer):
    permissions = PermissionSerializer(many=True, read_only=True)

    class Meta:
        model = Role
        fields = ("id", "name", "guard_name", "permissions", "created_at", "updated_at")


class UserSerializer(serializers.ModelSerializer):
    role = serializers.SerializerMethodField()
    created_at = serializers.DateTimeField(source="date_joined", read_only=True)

    class Meta:
        model = User
        fields = ("id", "name", "email", "is_active", "role", "tenant_id", "created_at")

    def get_role(self, obj):
        role = obj.primary_role
        return role.name if role else None


# =============================================================================
# Input serializers
# =============================================================================

class UserCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    role = serializers.CharField(max_length=150)
    password = serializers.CharField(min_length=8, write_only=True, required=False)


class UserUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False)
    role = serializers.CharField(max_length=150, required=False)
    password = serializers.CharField(min_length=8, write_only=True, required=False, allow_blank=True)


class RoleInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    permissions = serializers.ListField(child=serializers.CharField(max_length=150), required=False)


class PermissionInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    group_name = serializers.CharField(max_length=100, required=False, allow_blank=True)


class BulkIdsSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


# =============================================================================
# Auth
# =============================================================================

class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    username_field = User.EMAIL_FIELD

    def validate(self, attrs):
        authenticate_kwargs = {
            self.username_field: attrs.get("email"),
            "password": attrs.get("password"),
        }
        user = authenticate(request=self.context.get("request"), **authenticate_kwargs)
        if not user:
            # ModelBackend refuses inactive users; tell them apart from bad credentials.
            candidate = User.objects.filter(email__iexact=attrs.get("email")).first()
            if candidate and not candidate.is_active and candidate.check_password(attrs.get("password")):
                raise PermissionDenied("Your account has been deactivated. Please contact support.")
            raise AuthenticationFailed("Invalid credentials")

        request = self.context.get("request")
        tenant = getattr(request, "tenant", None)
        if tenant is not None and user.tenant_id != tenant.tenant_id:
            raise AuthenticationFailed("Invalid credentials")

        refresh = RefreshToken.for_user(user)
        return {
            "access": str(refresh.access_token),
            "refresh": str(refresh),
            "user": UserSerializer(user).data,
        }
