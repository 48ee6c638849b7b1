"""
Tenant context using contextvars for async-safety.

The resolution middleware builds one TenantContext per request. Code that
needs tenancy receives it explicitly (request.tenant, ActorContext.tenant);
the contextvar mirror exists for logging and for code paths such as
management commands that run outside a request.

Usage:
    # In middleware
    set_tenant_context(TenantContext.for_tenant("acme", "acme.localhost"))

    # Context manager for explicit scoping
    with tenant_context(TenantContext.central("localhost")):
        ...

Why contextvars instead of threading.local()?
- Async-safe: Works correctly with async views and ASGI
- Automatic cleanup: Token-based reset prevents context leakage
"""
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Optional, NamedTuple

CENTRAL_GUARD = "web"
TENANT_GUARD = "tenant"


class TenantContext(NamedTuple):
    """Immutable tenant context for a request."""

    tenant_id: Optional[str]  # None for the central workspace
    domain: str

    @classmethod
    def central(cls, domain: str = "localhost") -> "TenantContext":
        return cls(tenant_id=None, domain=domain)

    @classmethod
    def for_tenant(cls, tenant_id: str, domain: str) -> "TenantContext":
        return cls(tenant_id=tenant_id, domain=domain)

    @property
    def is_tenant(self) -> bool:
        return self.tenant_id is not None

    @property
    def guard(self) -> str:
        """Guard name that scopes roles and permissions."""
        return TENANT_GUARD if self.is_tenant else CENTRAL_GUARD

    @property
    def label(self) -> str:
        """Human readable workspace label returned in list metadata."""
        return self.domain if self.is_tenant else f"Central ({self.domain})"

    @property
    def user_type(self) -> str:
        return "Tenant Employee" if self.is_tenant else "Central Admin"


# None means no tenant context (system operations)
_current_tenant: ContextVar[Optional[TenantContext]] = ContextVar(
    "current_tenant",
    default=None,
)


def get_current_tenant() -> Optional[TenantContext]:
    """
    Get the current tenant context.

    Returns None if no tenant context is set (e.g., during system operations
    or before middleware has processed the request).
    """
    return _current_tenant.get()


def set_tenant_context(ctx: TenantContext) -> None:
    """
    Set the current tenant context.

    Called by middleware after host resolution.
    """
    _current_tenant.set(ctx)


def clear_tenant_context() -> None:
    """
    Clear the current tenant context.

    Called by middleware in finally block to ensure cleanup.
    """
    _current_tenant.set(None)


@contextmanager
def tenant_context(ctx: TenantContext):
    """
    Context manager for setting tenant context.

    Automatically restores previous context on exit (even on exception).
    """
    token = _current_tenant.set(ctx)
    try:
        yield ctx
    finally:
        _current_tenant.reset(token)
