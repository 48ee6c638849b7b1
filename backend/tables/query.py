"""
Query descriptors: which rows, in what order, on what page.

A QueryDescriptor is parsed once per request from the HTTP query string and
is then the only input the resolver needs besides the resource schema and
the tenant context.

Query params:
    search    free text
    page      1-based page number
    pageSize  rows per page
    sortCol   sortable column name (resource whitelist)
    sortDir   asc | desc
    ids       comma-separated identifiers (explicit scope)
    ...       resource filters (status, role, date_from, date_to, scope, group)
"""
from dataclasses import dataclass, field
from typing import Mapping, Optional

from django.conf import settings

from .exceptions import QueryValidationError

SORT_ASC = "asc"
SORT_DESC = "desc"
SORT_DIRECTIONS = (SORT_ASC, SORT_DESC)

# Filter values that mean "no filter".
EMPTY_FILTER_VALUES = ("", "all")


@dataclass(frozen=True)
class QueryDescriptor:
    search: str = ""
    filters: Mapping[str, str] = field(default_factory=dict)
    sort_field: Optional[str] = None
    sort_direction: str = SORT_ASC
    page: int = 1
    page_size: int = 10
    explicit_ids: Optional[tuple] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    @property
    def has_explicit_ids(self) -> bool:
        return self.explicit_ids is not None

    @property
    def is_default_view(self) -> bool:
        """No search, no filters, no requested sort."""
        return not self.search and not self.filters and self.sort_field is None


def _positive_int(params, name: str, default: int) -> int:
    raw = params.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise QueryValidationError(f"{name} must be a positive integer.", field=name)
    if value < 1:
        raise QueryValidationError(f"{name} must be a positive integer.", field=name)
    return value


def parse_ids(raw: str, schema) -> tuple:
    """Parse a comma-separated id list, keeping first-seen order and dropping duplicates."""
    ids = []
    seen = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            identifier = schema.coerce_id(part)
        except (TypeError, ValueError):
            raise QueryValidationError(f"Invalid identifier: {part!r}.", field="ids")
        if identifier not in seen:
            seen.add(identifier)
            ids.append(identifier)
    return tuple(ids)


def parse_query(params, schema) -> QueryDescriptor:
    """
    Build a QueryDescriptor from request query params.

    Raises:
        QueryValidationError: on any malformed or unsupported parameter
    """
    tables = settings.TABLES
    page = _positive_int(params, "page", 1)
    page_size = _positive_int(params, "pageSize", tables["DEFAULT_PAGE_SIZE"])
    if page_size > tables["MAX_PAGE_SIZE"]:
        raise QueryValidationError(
            f"pageSize cannot exceed {tables['MAX_PAGE_SIZE']}.", field="pageSize"
        )

    sort_field = params.get("sortCol") or None
    if sort_field is not None and sort_field not in schema.sortable:
        raise QueryValidationError(
            f"Cannot sort by {sort_field!r}. Sortable columns: {', '.join(schema.sortable)}.",
            field="sortCol",
        )

    sort_direction = (params.get("sortDir") or SORT_ASC).lower()
    if sort_direction not in SORT_DIRECTIONS:
        raise QueryValidationError("sortDir must be 'asc' or 'desc'.", field="sortDir")

    filters = {}
    for name in schema.filter_params:
        value = (params.get(name) or "").strip()
        if value.lower() in EMPTY_FILTER_VALUES:
            continue
        filters[name] = value
    # Fail early on values the schema cannot turn into clauses.
    schema.validate_filters(filters)

    explicit_ids = None
    raw_ids = params.get("ids")
    if raw_ids:
        explicit_ids = parse_ids(raw_ids, schema)

    return QueryDescriptor(
        search=(params.get("search") or "").strip(),
        filters=filters,
        sort_field=sort_field,
        sort_direction=sort_direction,
        page=page,
        page_size=page_size,
        explicit_ids=explicit_ids,
    )
