# tests/test_logging.py
"""JSON log lines carry the workspace and caller extras."""

import json
import logging

from ops.logging_config import JsonFormatter, WorkspaceFilter, get_logging_config
from tenant.context import TenantContext, tenant_context


def make_record(**extra):
    record = logging.LogRecord("tables.views", logging.INFO, __file__, 10, "Export generated", (), None)
    record.__dict__.update(extra)
    return record


def test_json_line_includes_workspace_and_extras():
    record = make_record(resource="users", rows=12)

    with tenant_context(TenantContext.for_tenant("acme", "acme.localhost")):
        WorkspaceFilter().filter(record)

    entry = json.loads(JsonFormatter().format(record))

    assert entry["workspace"] == "acme"
    assert entry["message"] == "Export generated"
    assert entry["extra"] == {"resource": "users", "rows": 12}


def test_records_outside_a_request_are_unscoped():
    record = make_record()
    WorkspaceFilter().filter(record)

    assert record.workspace == "-"
    assert "extra" not in json.loads(JsonFormatter().format(record))


def test_debug_config_uses_console_format(monkeypatch):
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)

    config = get_logging_config(debug=True)

    assert config["handlers"]["console"]["formatter"] == "verbose"
    assert config["loggers"]["tables"]["level"] == "DEBUG"
    assert config["loggers"]["django.db.backends"]["handlers"] == ["console"]
