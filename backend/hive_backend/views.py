"""Project-level views that do not belong to a single app."""
import logging

from django.http import JsonResponse

logger = logging.getLogger(__name__)

# Non-standard status used by the dashboard to recognise a stale CSRF token.
CSRF_STALE_STATUS = 419


def csrf_failure(request, reason=""):
    """
    CSRF failure view (settings.CSRF_FAILURE_VIEW).

    Answers with 419 instead of Django's HTML 403 so that API clients can
    refresh their credentials and retry the request exactly once.
    """
    logger.info("CSRF check failed", extra={"path": request.path, "reason": reason})
    return JsonResponse(
        {"detail": "CSRF token missing or expired.", "code": "csrf_stale"},
        status=CSRF_STALE_STATUS,
    )
