# tests/test_health.py
"""Operations endpoints answer on any host; metrics track table traffic."""

import pytest
from prometheus_client import REGISTRY

from ops.metrics import normalize_endpoint
from tables import views as table_views
from tables.exceptions import SearchUnavailable

pytestmark = pytest.mark.django_db


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_liveness(client):
    response = client.get("/_health/live", HTTP_HOST="ghost.localhost")

    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness(client):
    response = client.get("/_health/ready")

    assert response.status_code == 200
    assert response.json()["database"]["status"] == "healthy"


def test_full_health_includes_search(client):
    body = client.get("/_health/full").json()

    assert body["status"] == "healthy"
    assert body["checks"]["search"]["backend"] == "database"
    assert body["checks"]["workspaces"]["status"] == "healthy"


# =============================================================================
# Metrics
# =============================================================================

def test_metrics_report_users_per_workspace(client, super_admin, central_users, tenant_admin):
    response = client.get("/_metrics/", HTTP_HOST="ghost.localhost")

    assert response.status_code == 200
    assert response["Content-Type"].startswith("text/plain")
    assert sample("hive_users", workspace="central", status="active") == 3
    assert sample("hive_users", workspace="central", status="inactive") == 1
    assert sample("hive_users", workspace="acme", status="active") == 1


def test_list_and_export_requests_are_counted(admin_client, super_admin, central_users):
    lists = sample("hive_table_requests_total", resource="users", kind="list")
    exports = sample("hive_export_rows_count", resource="users", format="csv")

    admin_client.get("/api/users/")
    admin_client.get("/api/users/export/", {"type": "csv"})

    assert sample("hive_table_requests_total", resource="users", kind="list") == lists + 1
    assert sample("hive_export_rows_count", resource="users", format="csv") == exports + 1


def test_search_outage_is_counted(admin_client, super_admin, monkeypatch):
    class DownProvider:
        def search(self, schema, request, offset, limit):
            raise SearchUnavailable()

    monkeypatch.setattr(table_views, "get_search_provider", DownProvider)
    before = sample("hive_search_unavailable_total", backend="database")

    response = admin_client.get("/api/users/")

    assert response.status_code == 503
    assert sample("hive_search_unavailable_total", backend="database") == before + 1


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/api/users/12/", "/api/users/{id}/"),
        ("/api/roles/3/toggle", "/api/roles/{id}/toggle"),
        ("/api/users/export/", "/api/users/export/"),
    ],
)
def test_endpoint_labels_collapse_ids(path, expected):
    assert normalize_endpoint(path) == expected
