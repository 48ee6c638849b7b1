"""
Table Controller: query state, server-driven pagination and row selection.

State machine over {page, page_size, search, sort_field, sort_direction, filters}:

- search changes are debounced and always reset the page to 1
- sort, page size and filter changes reset the page to 1 and keep the rest
- every page change is a new server fetch; fetched rows are never re-sliced

Every fetch is tagged with an increasing version. Only the response for the
latest version is applied; older responses that arrive late are dropped.
In-flight requests are never cancelled.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .envelope import Page, normalize_ids, normalize_page
from .exceptions import DashboardError, SearchUnavailable, SessionExpired

logger = logging.getLogger(__name__)

ELLIPSIS = "..."
EMPTY_FILTER_VALUES = ("", "all", None)


@dataclass(frozen=True)
class TableQuery:
    page: int = 1
    page_size: int = 10
    search: str = ""
    sort_field: Optional[str] = None
    sort_direction: str = "asc"
    filters: Mapping[str, str] = field(default_factory=dict)
    explicit_ids: Optional[tuple] = None

    def with_changes(self, **changes) -> "TableQuery":
        return replace(self, **changes)

    def to_params(self) -> dict:
        params = {"page": self.page, "pageSize": self.page_size}
        if self.search:
            params["search"] = self.search
        if self.sort_field:
            params["sortCol"] = self.sort_field
            params["sortDir"] = self.sort_direction
        for key, value in self.filters.items():
            if value not in EMPTY_FILTER_VALUES:
                params[key] = value
        if self.explicit_ids is not None:
            params["ids"] = ",".join(str(identifier) for identifier in self.explicit_ids)
        return params


def pagination_range(current: int, total_pages: int, siblings: int = 1) -> list:
    """
    Page numbers for a pager, with ELLIPSIS for the gaps.

    >>> pagination_range(6, 12)
    [1, '...', 5, 6, 7, '...', 12]
    """
    if total_pages <= 0:
        return []
    # first, last, current, siblings on each side, two ellipses
    if total_pages <= 2 * siblings + 5:
        return list(range(1, total_pages + 1))

    left = max(current - siblings, 2)
    right = min(current + siblings, total_pages - 1)
    pages = [1]
    if left > 2:
        pages.append(ELLIPSIS)
    pages.extend(range(left, right + 1))
    if right < total_pages - 1:
        pages.append(ELLIPSIS)
    pages.append(total_pages)
    return pages


class SelectionState:
    """
    Selected rows, keyed by record id (never by row index).

    Selection survives page changes and background refreshes as long as the
    ids persist. `select_across` switches to the whole filtered result: the
    ids come from the server and subsequent exports use them as explicit ids.
    """

    def __init__(self):
        self._selected = {}
        self.across_filtered = False
        # The server capped the select-across id list.
        self.truncated = False

    def __len__(self):
        return len(self._selected)

    def __contains__(self, identifier):
        return self._selected.get(identifier, False)

    @property
    def ids(self) -> list:
        """Selected ids in selection order."""
        return [identifier for identifier, selected in self._selected.items() if selected]

    def toggle(self, identifier) -> bool:
        if identifier in self:
            del self._selected[identifier]
            self.across_filtered = False
            return False
        self._selected[identifier] = True
        return True

    def select_all_visible(self, visible_ids) -> None:
        for identifier in visible_ids:
            self._selected[identifier] = True

    def deselect_visible(self, visible_ids) -> None:
        for identifier in visible_ids:
            self._selected.pop(identifier, None)
        self.across_filtered = False

    def all_visible_selected(self, visible_ids) -> bool:
        visible_ids = list(visible_ids)
        return bool(visible_ids) and all(identifier in self for identifier in visible_ids)

    def select_across(self, ids, truncated: bool = False) -> None:
        self._selected = {identifier: True for identifier in ids}
        self.across_filtered = True
        self.truncated = truncated

    def clear(self) -> None:
        self._selected = {}
        self.across_filtered = False
        self.truncated = False


class RemoteTableSource:
    """Fetch pages and id lists for one resource through the ApiClient."""

    def __init__(self, api, endpoint: str, resource: str):
        self.api = api
        self.endpoint = endpoint
        self.resource = resource

    async def fetch_page(self, params: dict) -> Page:
        body = await self.api.get_table(self.endpoint, params)
        return normalize_page(body, self.resource)

    async def fetch_ids(self, params: dict) -> list:
        params = {key: value for key, value in params.items() if key not in ("page", "pageSize")}
        body = await self.api.get_table(self.endpoint, {**params, "ids_only": "1"})
        return normalize_ids(body)


class TableController:
    """Client-side table state. `source` provides fetch_page(params) and fetch_ids(params)."""

    def __init__(
        self,
        source,
        *,
        page_size: int = 10,
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
        debounce: float = 0.3,
        id_key: str = "id",
    ):
        self.source = source
        self.debounce = debounce
        self.id_key = id_key
        self.query = TableQuery(page_size=page_size, sort_field=sort_field, sort_direction=sort_direction)
        self.selection = SelectionState()

        self.rows: list = []
        self.total = 0
        self.meta: dict = {}
        self.loading = False
        self.error: Optional[str] = None

        self._version = 0
        self._pending_search: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, source, config, **options) -> "TableController":
        """Controller using the configured page size and search debounce."""
        return cls(source, page_size=config.page_size, debounce=config.search_debounce, **options)

    # -- derived -------------------------------------------------------------

    @property
    def visible_ids(self) -> list:
        return [row[self.id_key] for row in self.rows]

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total // self.query.page_size))

    def pagination_range(self, siblings: int = 1) -> list:
        return pagination_range(self.query.page, self.total_pages, siblings)

    # -- fetching ------------------------------------------------------------

    async def refresh(self) -> None:
        """Fetch the page for the current query; apply it only if it is still the latest."""
        self._version += 1
        version = self._version
        query = self.query
        self.loading = True
        try:
            page = await self.source.fetch_page(query.to_params())
        except SessionExpired:
            self.loading = False
            raise
        except SearchUnavailable as exc:
            if version == self._version:
                # Keep the last good rows on screen.
                self.error = exc.message
                self.loading = False
            return
        except DashboardError as exc:
            if version == self._version:
                self.error = exc.message
                self.loading = False
            return

        if version != self._version:
            logger.debug("Discarding stale table response", extra={"version": version, "latest": self._version})
            return

        self.rows = page.rows
        self.total = page.total
        self.meta = page.meta
        self.error = None
        self.loading = False

    async def _apply(self, **changes) -> None:
        self.query = self.query.with_changes(**changes)
        await self.refresh()

    # -- mutations -----------------------------------------------------------

    def set_search(self, text: str) -> asyncio.Task:
        """
        Debounced: each call replaces the pending one; only the settled value
        is fetched, always on page 1.
        """
        if self._pending_search is not None and not self._pending_search.done():
            self._pending_search.cancel()
        self._pending_search = asyncio.ensure_future(self._search_after_quiet_period(text.strip()))
        return self._pending_search

    async def _search_after_quiet_period(self, text: str) -> None:
        await asyncio.sleep(self.debounce)
        await self._apply(search=text, page=1)

    async def settle(self) -> None:
        """Wait for a pending debounced search, if any."""
        # A newer search may replace the pending one while we wait.
        while self._pending_search is not None and not self._pending_search.done():
            await asyncio.wait([self._pending_search])
        task = self._pending_search
        if task is not None and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    async def set_sort(self, field: Optional[str], direction: str = "asc") -> None:
        await self._apply(sort_field=field, sort_direction=direction, page=1)

    async def set_page_size(self, page_size: int) -> None:
        await self._apply(page_size=page_size, page=1)

    async def set_filter(self, key: str, value: Optional[str]) -> None:
        filters = dict(self.query.filters)
        if value in EMPTY_FILTER_VALUES:
            filters.pop(key, None)
        else:
            filters[key] = value
        await self._apply(filters=filters, page=1)

    async def set_page(self, page: int) -> None:
        await self._apply(page=max(1, page))

    # -- selection -----------------------------------------------------------

    def toggle(self, identifier) -> bool:
        return self.selection.toggle(identifier)

    def select_all_visible(self) -> None:
        self.selection.select_all_visible(self.visible_ids)

    def clear_selection(self) -> None:
        self.selection.clear()

    async def select_across_filtered(self) -> int:
        """Select every row of the filtered result (ids fetched from the server)."""
        ids = await self.source.fetch_ids(self.query.to_params())
        self.selection.select_across(ids, truncated=getattr(ids, "truncated", False))
        if self.selection.truncated:
            logger.warning("Select-across was capped by the server", extra={"selected": len(ids)})
        return len(ids)
