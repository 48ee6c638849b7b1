from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils.translation import gettext_lazy as _

from tenant.context import CENTRAL_GUARD, TENANT_GUARD

GUARD_CHOICES = [(CENTRAL_GUARD, "Central"), (TENANT_GUARD, "Tenant")]


class UserManager(BaseUserManager):
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The given email must be set")
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self._create_user(email, password, **extra_fields)


class Permission(models.Model):
    """A named capability, scoped to a guard and (for tenant guards) a tenant."""

    name = models.CharField(max_length=150)
    guard_name = models.CharField(max_length=20, choices=GUARD_CHOICES, default=CENTRAL_GUARD)
    group_name = models.CharField(max_length=100, blank=True, default="")
    tenant = models.ForeignKey(
        "tenant.Tenant", null=True, blank=True, on_delete=models.CASCADE, related_name="permissions"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "accounts_permission"
        constraints = [
            models.UniqueConstraint(fields=["name", "guard_name", "tenant"], name="uniq_permission_per_guard"),
        ]
        ordering = ["name"]

    def __str__(self):
        return self.name


class Role(models.Model):
    name = models.CharField(max_length=150)
    guard_name = models.CharField(max_length=20, choices=GUARD_CHOICES, default=CENTRAL_GUARD)
    tenant = models.ForeignKey(
        "tenant.Tenant", null=True, blank=True, on_delete=models.CASCADE, related_name="roles"
    )
    permissions = models.ManyToManyField(Permission, blank=True, related_name="roles")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "accounts_role"
        constraints = [
            models.UniqueConstraint(fields=["name", "guard_name", "tenant"], name="uniq_role_per_guard"),
        ]
        ordering = ["name"]

    def __str__(self):
        return self.name


class User(AbstractUser):
    username = None
    email = models.EmailField("email address", unique=True)
    name = models.CharField(max_length=150)
    tenant = models.ForeignKey(
        "tenant.Tenant", null=True, blank=True, on_delete=models.CASCADE, related_name="users"
    )
    roles = models.ManyToManyField(Role, blank=True, related_name="users")

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["name"]

    objects = UserManager()

    class Meta:
        verbose_name = _("User")
        verbose_name_plural = _("Users")

    def __str__(self):
        return self.email

    @property
    def primary_role(self):
        """First role by name; users normally hold exactly one."""
        roles = sorted(self.roles.all(), key=lambda role: role.name)
        return roles[0] if roles else None

    def has_role(self, name: str) -> bool:
        return any(role.name == name for role in self.roles.all())
