"""
Errors raised while resolving or exporting table rows.

All of them are DRF APIExceptions so views can let them propagate;
table_exception_handler adds the machine-readable fields the dashboard uses.
"""
from typing import Optional

from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

from ops.metrics import record_search_unavailable


class QueryValidationError(APIException):
    """Bad query parameter or unsupported export type. Raised before any resolution work."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid query."
    default_code = "invalid_query"

    def __init__(self, detail=None, field: Optional[str] = None):
        super().__init__(detail=detail, code=self.default_code)
        self.field = field


class SearchUnavailable(APIException):
    """The search provider could not be reached. Retryable."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Search is temporarily unavailable. Please try again."
    default_code = "search_unavailable"
    retry_after = 5


def table_exception_handler(exc, context):
    """
    DRF exception handler (settings.REST_FRAMEWORK["EXCEPTION_HANDLER"]).

    Every error response carries "detail" and a "code"; query errors name the
    offending "field" and search outages are flagged "retryable".
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(response.data, dict) and "detail" in response.data:
        if isinstance(exc, APIException):
            codes = exc.get_codes()
            if isinstance(codes, str):
                response.data["code"] = codes

    if isinstance(exc, QueryValidationError):
        response.data["field"] = exc.field
    elif isinstance(exc, SearchUnavailable):
        record_search_unavailable(settings.TABLES["SEARCH_BACKEND"])
        response.data["retryable"] = True
        response["Retry-After"] = str(exc.retry_after)

    return response
