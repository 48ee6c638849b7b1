"""
Row resolution: search provider order + record store lookup -> ordered rows.

The provider decides which ids match and in what order; the store only turns
ids into records. Records come back unordered, so the resolver walks the
provider's id list and picks each record from the fetched set. Ids without a
record (deleted, other workspace, failed lookup) are dropped and the total is
reduced; they never fail the page.

Serial numbers are a pure function of output position: 1..N per page or
export scope, never the database id.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .search import SearchRequest

logger = logging.getLogger(__name__)


def number_rows(rows, start: int = 1) -> list:
    """Return copies of rows with serial_number set from position (start, start+1, ...)."""
    return [{**row, "serial_number": start + index} for index, row in enumerate(rows)]


@dataclass
class ResolvedPage:
    rows: list
    total: int
    ids: list = field(default_factory=list)


@dataclass
class ResolvedIds:
    ids: list
    total: int  # size of the whole result, before the limit

    @property
    def truncated(self) -> bool:
        return self.total > len(self.ids)


@dataclass
class _Window:
    ids: list
    total: int
    records: Optional[dict] = None  # already fetched (explicit scope)


class RowResolver:
    """Resolve query descriptors into ordered, numbered rows."""

    def __init__(self, provider, store):
        self.provider = provider
        self.store = store

    def search_request(self, schema, query, context) -> SearchRequest:
        return SearchRequest(
            text=query.search,
            clauses=tuple(schema.scope_clauses(context) + schema.filter_clauses(query.filters, context)),
            sort_field=query.sort_field,
            sort_direction=query.sort_direction,
        )

    # -- public API ----------------------------------------------------------

    def resolve(self, schema, query, context) -> ResolvedPage:
        """Resolve one page of rows: len(rows) <= page_size and len(rows) <= total."""
        window = self._window(schema, query, context, query.offset, query.page_size)
        return self._materialize(schema, window, context)

    def resolve_all(self, schema, query, context, limit: int) -> ResolvedPage:
        """Resolve up to `limit` rows from the start of the result, ignoring pagination."""
        window = self._window(schema, query, context, 0, limit)
        return self._materialize(schema, window, context)

    def resolve_ids(self, schema, query, context, limit: int) -> ResolvedIds:
        """Ordered ids of the whole result (no record fetch), for select-across."""
        window = self._window(schema, query, context, 0, limit)
        return ResolvedIds(ids=window.ids, total=max(window.total, len(window.ids)))

    # -- windows -------------------------------------------------------------

    def _window(self, schema, query, context, offset: int, limit: int) -> _Window:
        if query.has_explicit_ids:
            return self._explicit_window(schema, query, context, offset, limit)

        request = self.search_request(schema, query, context)
        pin = schema.pin_rule()
        if pin is not None and pin.applies(query) and self._matches(schema, request, pin.identifier):
            rest = request.excluding([pin.identifier])
            if offset == 0:
                hits = self.provider.search(schema, rest, 0, max(limit - 1, 0))
                ids = [pin.identifier] + hits.ids if limit > 0 else []
                return _Window(ids=ids, total=hits.total + 1)
            # The pinned row occupies one slot of page 1; later pages shift by one.
            hits = self.provider.search(schema, rest, offset - 1, limit)
            return _Window(ids=hits.ids, total=hits.total + 1)

        hits = self.provider.search(schema, request, offset, limit)
        return _Window(ids=hits.ids, total=hits.total)

    def _matches(self, schema, request: SearchRequest, identifier) -> bool:
        return self.provider.search(schema, request.restricted_to([identifier]), 0, 1).total > 0

    def _explicit_window(self, schema, query, context, offset: int, limit: int) -> _Window:
        ids = list(query.explicit_ids)
        if ids and query.sort_field is not None:
            # Ordering comes from the provider, restricted to the explicit set.
            request = SearchRequest(
                clauses=tuple(schema.scope_clauses(context)),
                sort_field=query.sort_field,
                sort_direction=query.sort_direction,
                ids=tuple(ids),
            )
            ids = self.provider.search(schema, request, 0, len(ids)).ids

        pin = schema.pin_rule()
        if pin is not None and pin.applies(query) and pin.identifier in ids:
            ids.remove(pin.identifier)
            ids.insert(0, pin.identifier)

        records = self.store.fetch(schema, ids, context)
        present = [identifier for identifier in ids if identifier in records]
        return _Window(
            ids=present[offset:offset + limit],
            total=len(present),
            records=records,
        )

    # -- materialization -----------------------------------------------------

    def _materialize(self, schema, window: _Window, context) -> ResolvedPage:
        records = window.records
        if records is None:
            records = self.store.fetch(schema, window.ids, context)

        rows = []
        ids = []
        dropped = 0
        for identifier in window.ids:
            record = records.get(identifier)
            if record is None:
                dropped += 1
                continue
            try:
                row = schema.project(record)
            except Exception:
                logger.warning(
                    "Skipping record that failed to project",
                    extra={"resource": schema.name, "record_id": identifier},
                    exc_info=True,
                )
                dropped += 1
                continue
            rows.append(row)
            ids.append(identifier)

        total = window.total - dropped
        if dropped:
            logger.info(
                "Dropped unresolvable ids from page",
                extra={"resource": schema.name, "dropped": dropped},
            )
        return ResolvedPage(rows=number_rows(rows), total=max(total, len(rows)), ids=ids)
