"""
Search providers: ranked, filtered, sorted identifier sources.

A provider answers one question: "which record ids match, in what order,
and how many are there?". It never returns records; the RecordStore does.

Providers:
- DatabaseSearchProvider: ORM-backed, used by default and in tests
- MeilisearchSearchProvider: HTTP search service (index per resource)

Filters reach providers as backend-neutral Clause objects built by the
resource schema, so both providers honour exactly the same filters.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Optional

import httpx
from django.conf import settings
from django.db import DatabaseError
from django.db.models import Q

from .exceptions import SearchUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Clause:
    """One filter condition on an index attribute.

    op: "eq" | "in" | "gte" | "lte". An "eq" clause with value None matches
    records where the attribute is null.
    """
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class SearchRequest:
    text: str = ""
    clauses: tuple = ()
    sort_field: Optional[str] = None
    sort_direction: str = "asc"
    ids: Optional[tuple] = None  # restrict to these ids
    exclude_ids: tuple = ()

    def restricted_to(self, ids) -> "SearchRequest":
        return replace(self, ids=tuple(ids))

    def excluding(self, ids) -> "SearchRequest":
        return replace(self, exclude_ids=tuple(self.exclude_ids) + tuple(ids))


@dataclass(frozen=True)
class SearchHits:
    ids: list
    total: int


class SearchProvider(ABC):
    """Opaque ranked-id source."""

    name = "abstract"

    @abstractmethod
    def search(self, schema, request: SearchRequest, offset: int, limit: int) -> SearchHits:
        """
        Return the ids for the window [offset, offset + limit) and the total match count.

        Raises:
            SearchUnavailable: if the provider cannot be reached
        """

    def ping(self) -> bool:
        return True


# =============================================================================
# Database provider
# =============================================================================

class DatabaseSearchProvider(SearchProvider):
    """
    Search over the primary database.

    Text search is a case-insensitive OR over schema.search_fields. Ordering is
    the requested sort with the primary key as tie-break, so windows are stable.
    """

    name = "database"

    LOOKUPS = {"eq": "exact", "in": "in", "gte": "gte", "lte": "lte"}

    def clause_q(self, schema, clause: Clause) -> Q:
        custom = schema.clause_q(clause)
        if custom is not None:
            return custom
        orm_field = schema.orm_field(clause.field)
        if clause.op == "eq" and clause.value is None:
            return Q(**{f"{orm_field}__isnull": True})
        return Q(**{f"{orm_field}__{self.LOOKUPS[clause.op]}": clause.value})

    def build_queryset(self, schema, request: SearchRequest):
        qs = schema.model._default_manager.all()

        if request.text:
            text_q = Q()
            for lookup in schema.search_fields:
                text_q |= Q(**{f"{lookup}__icontains": request.text})
            qs = qs.filter(text_q)

        for clause in request.clauses:
            qs = qs.filter(self.clause_q(schema, clause))

        if request.ids is not None:
            qs = qs.filter(pk__in=request.ids)
        if request.exclude_ids:
            qs = qs.exclude(pk__in=request.exclude_ids)

        sort_field, direction = request.sort_field, request.sort_direction
        if sort_field is None:
            sort_field, direction = schema.default_sort
        orm_sort = schema.sortable[sort_field]
        prefix = "-" if direction == "desc" else ""
        return qs.order_by(f"{prefix}{orm_sort}", f"{prefix}pk")

    def search(self, schema, request: SearchRequest, offset: int, limit: int) -> SearchHits:
        qs = self.build_queryset(schema, request)
        try:
            total = qs.count()
            ids = list(qs.values_list("pk", flat=True)[offset:offset + limit]) if limit > 0 else []
        except DatabaseError as exc:
            logger.error(
                "Database search failed",
                extra={"resource": schema.name, "error": str(exc)},
            )
            raise SearchUnavailable() from exc
        return SearchHits(ids=ids, total=total)


# =============================================================================
# Meilisearch provider
# =============================================================================

def format_filter_value(value) -> str:
    """Render a clause value in Meilisearch filter syntax."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(str(value))


def format_clause(clause: Clause) -> str:
    if clause.op == "eq" and clause.value is None:
        return f"{clause.field} IS NULL"
    if clause.op == "eq":
        return f"{clause.field} = {format_filter_value(clause.value)}"
    if clause.op == "in":
        values = ", ".join(format_filter_value(v) for v in clause.value)
        return f"{clause.field} IN [{values}]"
    if clause.op == "gte":
        return f"{clause.field} >= {format_filter_value(clause.value)}"
    if clause.op == "lte":
        return f"{clause.field} <= {format_filter_value(clause.value)}"
    raise ValueError(f"Unsupported clause operator: {clause.op}")


class MeilisearchSearchProvider(SearchProvider):
    """
    Search via a Meilisearch instance.

    Each resource schema maps to one index (schema.index_name). Documents are
    written by tables.indexing; this class only reads (plus index maintenance
    helpers used by the sync command).
    """

    name = "meilisearch"

    def __init__(self, url: str, api_key: str = "", timeout: float = 5.0, client: Optional[httpx.Client] = None):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = client or httpx.Client(base_url=url, headers=headers, timeout=timeout)

    def build_body(self, schema, request: SearchRequest, offset: int, limit: int) -> dict:
        filters = [format_clause(c) for c in request.clauses]
        if request.ids is not None:
            filters.append(format_clause(Clause(schema.id_attribute, "in", request.ids)))
        if request.exclude_ids:
            excluded = ", ".join(format_filter_value(v) for v in request.exclude_ids)
            filters.append(f"{schema.id_attribute} NOT IN [{excluded}]")

        body = {
            "q": request.text,
            "offset": offset,
            "limit": limit,
            "filter": filters,
            "attributesToRetrieve": [schema.id_attribute],
        }
        if request.sort_field is not None:
            body["sort"] = [f"{request.sort_field}:{request.sort_direction}"]
        elif not request.text:
            # Relevance only means something with a query; otherwise keep the resource default.
            field, direction = schema.default_sort
            body["sort"] = [f"{field}:{direction}"]
        return body

    def _send(self, method: str, path: str, body) -> dict:
        try:
            response = self.client.request(method, path, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            logger.error(f"Search engine request failed: {exc}", extra={"path": path})
            raise SearchUnavailable() from exc

    def _post(self, path: str, body) -> dict:
        return self._send("POST", path, body)

    def _patch(self, path: str, body) -> dict:
        return self._send("PATCH", path, body)

    def search(self, schema, request: SearchRequest, offset: int, limit: int) -> SearchHits:
        body = self.build_body(schema, request, offset, limit)
        data = self._post(f"/indexes/{schema.index_name}/search", body)
        ids = [schema.coerce_id(hit[schema.id_attribute]) for hit in data.get("hits", [])]
        total = data.get("totalHits", data.get("estimatedTotalHits", len(ids)))
        return SearchHits(ids=ids, total=total)

    def ping(self) -> bool:
        try:
            response = self.client.get("/health")
            return response.status_code == 200 and response.json().get("status") == "available"
        except httpx.HTTPError as exc:
            logger.warning(f"Search engine health check failed: {exc}")
            return False

    # -- index maintenance ---------------------------------------------------

    def configure_index(self, schema) -> None:
        """Declare filterable and sortable attributes for a resource index."""
        self._patch(f"/indexes/{schema.index_name}/settings", {
            "filterableAttributes": list(schema.index_filterable),
            "sortableAttributes": list(schema.sortable),
            "searchableAttributes": list(schema.index_searchable),
        })

    def add_documents(self, schema, documents: list) -> None:
        if documents:
            self._post(f"/indexes/{schema.index_name}/documents", documents)

    def delete_documents(self, schema, ids: list) -> None:
        if ids:
            self._post(f"/indexes/{schema.index_name}/documents/delete-batch", list(ids))


def get_search_provider() -> SearchProvider:
    """Build the provider configured in settings.TABLES["SEARCH_BACKEND"]."""
    tables = settings.TABLES
    backend = tables["SEARCH_BACKEND"]
    if backend == "database":
        return DatabaseSearchProvider()
    if backend == "meilisearch":
        return MeilisearchSearchProvider(
            url=tables["MEILISEARCH_URL"],
            api_key=tables["MEILISEARCH_API_KEY"],
            timeout=tables["SEARCH_TIMEOUT"],
        )
    raise ValueError(f"Unknown SEARCH_BACKEND: {backend}")
