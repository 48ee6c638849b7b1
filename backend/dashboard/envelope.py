"""
Response envelope adapter.

The API answers list requests with one documented envelope:

    {"meta": {"total": int, "page": int, "page_size": int, ...}, "<resource>": [row, ...]}

and export payloads with:

    {"data": [row, ...], "columns": [{"key", "header"}, ...], "meta": {"total", "truncated"}}

Older servers used other shapes (a paginator object under the resource key,
a bare "data"/"total" pair, payloads without columns). They are normalised
here, at the boundary, so the table and export code only see Page and
ExportPayload.
"""
from dataclasses import dataclass, field
from typing import Any

from .exceptions import EnvelopeError

# Row keys never shown in clipboard or print output.
INTERNAL_FIELDS = ("id",)
SERIAL_FIELD = "serial_number"
SERIAL_HEADER = "#"


@dataclass
class Page:
    rows: list
    total: int
    meta: dict = field(default_factory=dict)


@dataclass
class ExportPayload:
    rows: list
    columns: list  # [{"key", "header"}]
    total: int
    truncated: bool = False
    title: str = ""


def decode_json(response) -> Any:
    """Body of a successful response; a non-JSON body is an EnvelopeError."""
    try:
        return response.json()
    except ValueError as exc:
        content_type = response.headers.get("content-type", "unknown")
        raise EnvelopeError(f"The server sent an unreadable response ({content_type}).", status=response.status_code) from exc


def _rows_and_total(container: Any, fallback_total=None):
    # Paginator object: {"data": [...], "total": n, ...}
    if isinstance(container, dict) and isinstance(container.get("data"), list):
        return container["data"], container.get("total", fallback_total)
    if isinstance(container, list):
        return container, fallback_total
    return None, None


def normalize_page(body: dict, resource: str) -> Page:
    if not isinstance(body, dict):
        raise EnvelopeError("List response must be a JSON object.")
    meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}

    for key in (resource, "data"):
        if key in body:
            rows, total = _rows_and_total(body[key], meta.get("total", body.get("total")))
            if rows is not None:
                return Page(rows=rows, total=int(total if total is not None else len(rows)), meta=meta)

    raise EnvelopeError(f"No rows found for {resource!r} in response.")


class IdList(list):
    """Ids for select-across; `truncated` when the server capped the list."""

    truncated = False


def normalize_ids(body: dict) -> IdList:
    ids = body.get("ids") if isinstance(body, dict) else None
    if not isinstance(ids, list):
        raise EnvelopeError("Id list response must contain an 'ids' array.")
    meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}
    result = IdList(ids)
    result.truncated = bool(meta.get("truncated", False))
    return result


def _header_for(key: str) -> str:
    if key == SERIAL_FIELD:
        return SERIAL_HEADER
    return key.replace("_", " ").title()


def normalize_export_payload(body: Any) -> ExportPayload:
    if isinstance(body, list):
        body = {"data": body}
    if not isinstance(body, dict) or not isinstance(body.get("data"), list):
        raise EnvelopeError("Export payload must contain a 'data' array.")

    rows = body["data"]
    meta = body.get("meta") if isinstance(body.get("meta"), dict) else {}

    columns = body.get("columns")
    if not columns:
        # Legacy payloads carry no column list; derive a stable one from the first row.
        keys = list(rows[0]) if rows else []
        columns = [{"key": key, "header": _header_for(key)} for key in keys]
    columns = [col for col in columns if col["key"] not in INTERNAL_FIELDS]

    return ExportPayload(
        rows=rows,
        columns=columns,
        total=int(meta.get("total", len(rows))),
        truncated=bool(meta.get("truncated", False)),
        title=meta.get("title", ""),
    )
