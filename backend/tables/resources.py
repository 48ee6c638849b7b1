"""
Resource schemas: everything the table pipeline knows about one resource.

A schema declares, for one model:
- which columns can be searched, filtered and sorted (and how they map to ORM fields)
- how a record is projected into a display row
- the fixed export column list (server-authoritative, independent of which
  columns the dashboard currently shows)
- an optional pin-to-top presentation rule

Schemas register themselves by name; views look them up with get_schema().
"""
import logging
from dataclasses import dataclass
from datetime import datetime, time
from typing import Optional

from django.conf import settings
from django.utils import timezone

from .exceptions import QueryValidationError
from .search import Clause

logger = logging.getLogger(__name__)

PIN_ALWAYS = "always"
PIN_DEFAULT_VIEW = "default_view"
PIN_NEVER = "never"
PIN_SCOPES = (PIN_ALWAYS, PIN_DEFAULT_VIEW, PIN_NEVER)

# Row keys that never become export or clipboard columns.
INTERNAL_ROW_KEYS = ("id",)


@dataclass(frozen=True)
class PinRule:
    """
    Force one identifier to the top of a listing.

    This is a presentation policy, not a data invariant. Each resource
    declares its own and settings.TABLES["PIN_TO_TOP"] overrides it:

        always        every listing and export in which the record matches
        default_view  only when there is no search, no filter and no requested sort
        never         disabled
    """
    identifier: object
    scope: str = PIN_ALWAYS

    def applies(self, query) -> bool:
        if self.scope == PIN_ALWAYS:
            return True
        if self.scope == PIN_DEFAULT_VIEW:
            return query.is_default_view
        return False


def parse_date(value: str, field: str):
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise QueryValidationError(f"Invalid {field} format. Use YYYY-MM-DD.", field=field)


def date_range_clauses(filters: dict, attribute: str = "created_at") -> list:
    """date_from / date_to (inclusive days) as clauses on a datetime attribute."""
    clauses = []
    tz = timezone.get_current_timezone()
    if "date_from" in filters:
        day = parse_date(filters["date_from"], "date_from")
        clauses.append(Clause(attribute, "gte", timezone.make_aware(datetime.combine(day, time.min), tz)))
    if "date_to" in filters:
        day = parse_date(filters["date_to"], "date_to")
        clauses.append(Clause(attribute, "lte", timezone.make_aware(datetime.combine(day, time.max), tz)))
    return clauses


class ResourceSchema:
    """Base class for resource schemas. Subclasses fill in the class attributes."""

    name = ""  # URL segment and response key, e.g. "users"
    title = ""  # Report title, e.g. "Users Report"
    model = None

    id_attribute = "id"
    search_fields: tuple = ()  # ORM lookups for free-text search
    sortable: dict = {}  # API column -> ORM field
    default_sort = ("id", "asc")
    filter_params: tuple = ()
    field_map: dict = {}  # index attribute -> ORM lookup, where they differ

    index_searchable: tuple = ()
    index_filterable: tuple = ()

    export_columns: list = []  # [{'key', 'header', 'width', 'numeric'?}]

    pin: Optional[PinRule] = None

    # -- identifiers ---------------------------------------------------------

    def coerce_id(self, raw):
        return int(raw)

    # -- filtering -----------------------------------------------------------

    @property
    def index_name(self) -> str:
        return self.name

    def orm_field(self, attribute: str) -> str:
        return self.field_map.get(attribute, attribute)

    def clause_q(self, clause: Clause):
        """Return a Q for clauses that need more than a field lookup, else None."""
        return None

    def scope_clauses(self, context) -> list:
        """Clauses confining every query to the caller's workspace."""
        return [Clause("tenant_id", "eq", context.tenant_id)]

    def filter_clauses(self, filters: dict, context) -> list:
        return date_range_clauses(filters)

    def validate_filters(self, filters: dict) -> None:
        # Building clauses runs all value parsing; the central context is enough for that.
        from tenant.context import TenantContext
        self.filter_clauses(filters, TenantContext.central())

    # -- records -------------------------------------------------------------

    def record_queryset(self, context):
        return self.model._default_manager.filter(tenant_id=context.tenant_id)

    def project(self, record) -> dict:
        """Denormalised display row for a record. Must include "id"."""
        raise NotImplementedError

    def to_document(self, record) -> dict:
        """Search index document for a record."""
        raise NotImplementedError

    # -- presentation --------------------------------------------------------

    def pin_rule(self) -> Optional[PinRule]:
        override = settings.TABLES.get("PIN_TO_TOP", {}).get(self.name)
        if override is None:
            return self.pin
        scope = override.get("scope", PIN_ALWAYS)
        if scope not in PIN_SCOPES:
            raise ValueError(f"Invalid pin scope for {self.name}: {scope}")
        identifier = override.get("id", self.pin.identifier if self.pin else None)
        if identifier is None:
            return None
        return PinRule(identifier=self.coerce_id(identifier), scope=scope)

    @property
    def payload_columns(self) -> list:
        """Client-facing column order for clipboard and print payloads."""
        return [
            {"key": col["key"], "header": col["header"]}
            for col in self.export_columns
            if col["key"] not in INTERNAL_ROW_KEYS
        ]


_registry: dict = {}


def register(schema_class):
    """Class decorator registering a schema instance under schema_class.name."""
    _registry[schema_class.name] = schema_class()
    return schema_class


def get_schema(name: str) -> ResourceSchema:
    try:
        return _registry[name]
    except KeyError:
        raise LookupError(f"No table schema registered for {name!r}")


def all_schemas() -> list:
    return list(_registry.values())
