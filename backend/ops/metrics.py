"""
Prometheus metrics endpoint.

Exposes application metrics in Prometheus format for scraping.

Metrics exposed:
- hive_table_requests_total: list, ids and export requests by resource
- hive_export_rows: rows delivered per export, by resource and format
- hive_exports_truncated_total: exports cut at their row cap
- hive_search_unavailable_total: search provider outages by backend
- hive_users: users per workspace and status (collected on scrape)
- hive_request_duration_seconds: HTTP request duration histogram
"""
import logging
import re
import time

from django.db import DatabaseError
from django.db.models import Count
from django.http import HttpResponse
from django.views import View
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

CENTRAL_LABEL = "central"

_metrics_initialized = False

# Metric references (initialized lazily)
_table_requests = None
_export_rows = None
_exports_truncated = None
_search_unavailable = None
_users = None
_request_duration = None
_active_requests = None


def _init_prometheus():
    """Register the metrics with the default registry, once per process."""
    global _metrics_initialized
    global _table_requests, _export_rows, _exports_truncated, _search_unavailable
    global _users, _request_duration, _active_requests

    if _metrics_initialized:
        return

    _table_requests = Counter(
        "hive_table_requests_total",
        "Table requests served",
        ["resource", "kind"],
    )

    _export_rows = Histogram(
        "hive_export_rows",
        "Rows delivered per export",
        ["resource", "format"],
        buckets=(10, 100, 1000, 5000, 10000, 50000, 100000),
    )

    _exports_truncated = Counter(
        "hive_exports_truncated_total",
        "Exports cut at their row cap",
        ["resource", "format"],
    )

    _search_unavailable = Counter(
        "hive_search_unavailable_total",
        "Search provider outages surfaced to callers",
        ["backend"],
    )

    _users = Gauge(
        "hive_users",
        "Users per workspace",
        ["workspace", "status"],
    )

    # Request metrics
    _request_duration = Histogram(
        "hive_request_duration_seconds",
        "HTTP request duration in seconds",
        ["method", "endpoint", "status"],
        buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    )

    _active_requests = Gauge(
        "hive_active_requests",
        "Number of requests currently being processed",
    )

    _metrics_initialized = True
    logger.info("Prometheus metrics initialized")


# =============================================================================
# Recording helpers (called from views and the exception handler)
# =============================================================================

def record_table_request(resource: str, kind: str) -> None:
    _init_prometheus()
    _table_requests.labels(resource=resource, kind=kind).inc()


def record_export(resource: str, export_format: str, rows: int, truncated: bool) -> None:
    _init_prometheus()
    _export_rows.labels(resource=resource, format=export_format).observe(rows)
    if truncated:
        _exports_truncated.labels(resource=resource, format=export_format).inc()


def record_search_unavailable(backend: str) -> None:
    _init_prometheus()
    _search_unavailable.labels(backend=backend).inc()


def collect_metrics():
    """Refresh the gauges that are computed from the database on scrape."""
    _init_prometheus()

    from accounts.models import User

    try:
        counts = User.objects.values("tenant_id", "is_active").annotate(count=Count("id"))
        # Drop workspaces that no longer have users.
        _users.clear()
        for row in counts:
            _users.labels(
                workspace=row["tenant_id"] or CENTRAL_LABEL,
                status="active" if row["is_active"] else "inactive",
            ).set(row["count"])
    except DatabaseError as e:
        logger.error("Error collecting metrics: %s", e)


def normalize_endpoint(path: str) -> str:
    """Collapse ids in a request path so endpoint labels stay low-cardinality."""
    endpoint = re.sub(r"/\d+(?=/|$)", "/{id}", path)
    return endpoint[:50]


class MetricsView(View):
    """
    Prometheus metrics endpoint.

    Exposes metrics in Prometheus format at /_metrics/.
    Should be protected in production (internal network only).
    """

    def get(self, request):
        collect_metrics()
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)


def track_request_metrics(get_response):
    """
    Middleware to track request duration metrics.

    Add to MIDDLEWARE after SecurityMiddleware:
        "ops.metrics.track_request_metrics",
    """
    _init_prometheus()

    def middleware(request):
        start = time.time()
        status = 500
        _active_requests.inc()

        try:
            response = get_response(request)
            status = response.status_code
            return response
        finally:
            _active_requests.dec()
            _request_duration.labels(
                method=request.method,
                endpoint=normalize_endpoint(request.path),
                status=f"{status // 100}xx",
            ).observe(time.time() - start)

    return middleware
