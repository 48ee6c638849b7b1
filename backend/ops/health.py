"""
Health endpoints for orchestrators and dashboards.

- /_health/live   liveness: the process answers
- /_health/ready  readiness: the default database answers
- /_health/full   every database, the search provider and the workspace registry
"""
import logging
import time
from typing import Any, Callable, Dict

from django.conf import settings
from django.db import DatabaseError, connections
from django.http import JsonResponse
from django.views import View

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"
DEGRADED = "degraded"


def timed(check: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a check and add its duration in milliseconds."""
    start = time.monotonic()
    result = check()
    result["duration_ms"] = round((time.monotonic() - start) * 1000, 2)
    return result


def check_database(alias: str = "default") -> Dict[str, Any]:
    def run():
        try:
            with connections[alias].cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
        except DatabaseError as e:
            logger.warning("Database health check failed", extra={"alias": alias, "error": str(e)})
            return {"status": UNHEALTHY, "alias": alias, "error": str(e)}
        return {"status": HEALTHY, "alias": alias}

    return timed(run)


def check_databases() -> Dict[str, Any]:
    results = {alias: check_database(alias) for alias in settings.DATABASES}
    healthy = all(r["status"] == HEALTHY for r in results.values())
    return {"status": HEALTHY if healthy else DEGRADED, "databases": results}


def check_search() -> Dict[str, Any]:
    """The search provider ranks every table; a dead provider means no lists."""
    from tables.search import get_search_provider

    def run():
        provider = get_search_provider()
        return {"status": HEALTHY if provider.ping() else UNHEALTHY, "backend": provider.name}

    return timed(run)


def check_workspaces() -> Dict[str, Any]:
    from tenant.models import Tenant

    def run():
        try:
            active = Tenant.objects.filter(is_active=True).count()
        except DatabaseError as e:
            return {"status": UNHEALTHY, "error": str(e)}
        return {"status": HEALTHY, "active_tenants": active}

    return timed(run)


def full_health() -> Dict[str, Any]:
    checks = {
        "databases": check_databases(),
        "search": check_search(),
        "workspaces": check_workspaces(),
    }

    statuses = {c["status"] for c in checks.values()}
    if statuses == {HEALTHY}:
        overall = HEALTHY
    elif UNHEALTHY in statuses:
        overall = UNHEALTHY
    else:
        overall = DEGRADED

    return {
        "status": overall,
        "checks": checks,
        "version": getattr(settings, "VERSION", "unknown"),
        "environment": "development" if settings.DEBUG else "production",
    }


class LivenessView(View):
    """Answers without touching any dependency."""

    def get(self, request):
        return JsonResponse({"status": "alive"})


class ReadinessView(View):
    def get(self, request):
        db = check_database()
        ready = db["status"] == HEALTHY
        return JsonResponse(
            {"status": "ready" if ready else "not_ready", "database": db},
            status=200 if ready else 503,
        )


class FullHealthView(View):
    """
    Full report for debugging and dashboards.

    Should be protected in production (internal network only).
    """

    def get(self, request):
        health = full_health()
        return JsonResponse(health, status=200 if health["status"] == HEALTHY else 503)
