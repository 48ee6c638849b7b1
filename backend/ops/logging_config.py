"""
Structured logging configuration.

Production writes JSON lines to stdout for log aggregation; development
writes a readable console line. Every record is tagged with the workspace
resolved for the current request ("central", a tenant slug, or "-" outside
a request).

Environment variables:
- LOG_FORMAT: "json" or "console" (default: json unless DEBUG)
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO, DEBUG when DEBUG)
"""
import json
import logging
import os
from datetime import datetime, timezone

from tenant.context import get_current_tenant

# Loggers owned by this project; all share the console handler.
APP_LOGGERS = ("accounts", "tables", "tenant", "ops", "dashboard")

# LogRecord attributes that are not caller-supplied extras.
STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "workspace"}


class WorkspaceFilter(logging.Filter):
    """Stamp records with the workspace of the request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "workspace"):
            ctx = get_current_tenant()
            if ctx is None:
                record.workspace = "-"
            else:
                record.workspace = ctx.tenant_id or "central"
        return True


def get_logging_config(debug: bool = False) -> dict:
    """Build the Django LOGGING dict for the given debug mode."""
    log_level = os.environ.get("LOG_LEVEL", "DEBUG" if debug else "INFO")
    log_format = os.environ.get("LOG_FORMAT", "console" if debug else "json")

    formatter_name = "verbose" if log_format == "console" else "json"
    formatters = {
        "json": {"()": "ops.logging_config.JsonFormatter"},
        "verbose": {
            "format": "[{asctime}] {levelname} {name} [{workspace}] {message}",
            "style": "{",
        },
    }

    def logger(level=log_level, handlers=("console",)):
        return {"handlers": list(handlers), "level": level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "workspace": {"()": "ops.logging_config.WorkspaceFilter"},
        },
        "formatters": {formatter_name: formatters[formatter_name]},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter_name,
                "filters": ["workspace"],
                "stream": "ext://sys.stdout",
            },
            "null": {"class": "logging.NullHandler"},
        },
        "loggers": {
            "": {"handlers": ["console"], "level": log_level},
            "django": logger(),
            "django.request": logger(log_level if debug else "ERROR"),
            "django.db.backends": logger("DEBUG" if debug else "INFO", ["console"] if debug else ["null"]),
            **{name: logger() for name in APP_LOGGERS},
        },
    }


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
    timestamp, level, logger, workspace, message, location,
    exception (when present) and extra (caller-supplied fields).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "workspace": getattr(record, "workspace", "-"),
            "message": record.getMessage(),
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extras = {
            key: value for key, value in record.__dict__.items() if key not in STANDARD_ATTRS
        }
        if extras:
            entry["extra"] = extras

        # Non-serializable extras (models, paths) fall back to str().
        return json.dumps(entry, default=str)
