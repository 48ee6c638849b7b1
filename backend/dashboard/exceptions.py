"""
Errors surfaced to dashboard code.

Server errors are mapped from the response's status and machine-readable
"code"; the clipboard and print errors are raised locally.
"""
from typing import Optional


class DashboardError(Exception):
    """Base class. `message` is safe to show to the user."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ValidationError(DashboardError):
    """Bad query parameter or export type (HTTP 400). Not retried."""

    def __init__(self, message: str, field: Optional[str] = None, status: Optional[int] = 400):
        super().__init__(message, status)
        self.field = field


class SearchUnavailable(DashboardError):
    """Search provider unreachable (HTTP 503). Retryable by the user."""


class SessionExpired(DashboardError):
    """401: the local session has been cleared and re-authentication is required."""


class WorkspaceNotFound(DashboardError):
    """The API host does not serve a workspace."""


class RequestFailed(DashboardError):
    """Any other failed request (network error, timeout, 5xx, 403...)."""


class EnvelopeError(DashboardError):
    """The response body is not JSON, or matches none of the known shapes."""


class ExportTruncated(DashboardError):
    """The export succeeded but was capped; shown as a warning next to the success."""

    def __init__(self, delivered: int, total: int):
        super().__init__(
            f"Only the first {delivered} of {total} rows were exported. Narrow the filters to export the rest."
        )
        self.delivered = delivered
        self.total = total


class ClipboardDenied(DashboardError):
    """Neither the system clipboard nor the fallback could be written."""

    def __init__(self, message: str = "Clipboard access was denied. Select the table and copy it manually (Ctrl+C)."):
        super().__init__(message)


class PopupBlocked(DashboardError):
    """The print window could not be opened."""

    def __init__(self, message: str = "The print window was blocked. Allow pop-ups for this site and try again."):
        super().__init__(message)
