"""
Tenant resolution middleware.

Maps the request host onto a TenantContext and attaches it to the request
(request.tenant) and to the tenant contextvar for the request's lifetime.

Resolution:
- Host listed in settings.CENTRAL_DOMAINS -> central context
- Host registered as an active tenant Domain -> tenant context
- Anything else -> request.tenant is None; API paths answer 404 so the
  dashboard can show its workspace-not-found screen
"""
import logging

from django.conf import settings
from django.http import JsonResponse

from tenant.context import TenantContext, set_tenant_context, clear_tenant_context
from tenant.models import Domain

logger = logging.getLogger(__name__)


def resolve_tenant(host: str):
    """Return the TenantContext for a host, or None if it serves no workspace."""
    hostname = host.split(":", 1)[0].lower()
    if hostname in settings.CENTRAL_DOMAINS:
        return TenantContext.central(hostname)

    domain = (
        Domain.objects.select_related("tenant")
        .filter(domain=hostname, tenant__is_active=True)
        .first()
    )
    if domain is None:
        return None
    return TenantContext.for_tenant(domain.tenant_id, hostname)


class TenantResolutionMiddleware:
    """Attach the resolved tenant to every request and clear it afterwards."""

    # -------------------------------------------------------------------------
    # PUBLIC PATHS - served regardless of host
    # -------------------------------------------------------------------------
    PUBLIC_PATHS = (
        "/admin/",
        "/static/",
        "/_health/",
        "/_metrics/",
    )

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        if request.path.startswith(self.PUBLIC_PATHS):
            request.tenant = TenantContext.central(request.get_host().split(":", 1)[0])
            return self.get_response(request)

        ctx = resolve_tenant(request.get_host())
        request.tenant = ctx
        if ctx is None:
            logger.info("Unknown workspace host", extra={"host": request.get_host(), "path": request.path})
            return JsonResponse(
                {"detail": "Workspace not found.", "code": "workspace_not_found"},
                status=404,
            )

        set_tenant_context(ctx)
        try:
            return self.get_response(request)
        finally:
            clear_tenant_context()
