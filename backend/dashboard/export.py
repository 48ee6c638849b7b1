"""
Export Trigger: turn a table's current query into a download, a clipboard
copy or a print window.

    trigger("spreadsheet" | "commaSeparated" | "document" | "clipboardPayload" | "printPayload",
            scope="filtered" | "selected")

The request carries the same query the table is showing. With the
"selected" scope the selected ids are sent as `ids`, which the server
treats as an explicit scope (search and filters no longer select rows,
sort still applies).

Each export runs as its own coroutine with its own `busy` flag; the table's
`loading` flag is never touched.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import unquote

from jinja2 import BaseLoader, Environment

from .envelope import SERIAL_FIELD, SERIAL_HEADER, ExportPayload, decode_json, normalize_export_payload
from .exceptions import ClipboardDenied, DashboardError, ExportTruncated, PopupBlocked, ValidationError
from .table import TableQuery

logger = logging.getLogger(__name__)

SPREADSHEET = "spreadsheet"
COMMA_SEPARATED = "commaSeparated"
DOCUMENT = "document"
CLIPBOARD = "clipboardPayload"
PRINT = "printPayload"

SCOPE_FILTERED = "filtered"
SCOPE_SELECTED = "selected"

# format -> (server `type`, fallback file extension)
FILE_FORMATS = {
    SPREADSHEET: ("excel", "xlsx"),
    COMMA_SEPARATED: ("csv", "csv"),
    DOCUMENT: ("pdf", "pdf"),
}
PAYLOAD_FORMATS = {
    CLIPBOARD: "copy",
    PRINT: "print",
}

LABELS = {
    SPREADSHEET: "Excel",
    COMMA_SEPARATED: "CSV",
    DOCUMENT: "PDF",
    CLIPBOARD: "Copy",
    PRINT: "Print",
}

_FILENAME_STAR = re.compile(r"filename\*\s*=\s*([\w-]+)''([^;]+)", re.IGNORECASE)
_FILENAME = re.compile(r'filename\s*=\s*"([^"]+)"|filename\s*=\s*([^;]+)', re.IGNORECASE)


@dataclass(frozen=True)
class ExportJob:
    """One export action. Built per trigger() call and never stored."""
    format: str
    scope: str
    query: TableQuery

    @property
    def is_file(self) -> bool:
        return self.format in FILE_FORMATS

    def params(self) -> dict:
        params = self.query.to_params()
        # Exports cover the whole scope, not the visible page.
        params.pop("page", None)
        params.pop("pageSize", None)
        params["type"] = FILE_FORMATS[self.format][0] if self.is_file else PAYLOAD_FORMATS[self.format]
        return params


def filename_from_response(response) -> Optional[str]:
    """Suggested filename from Content-Disposition, if any."""
    disposition = response.headers.get("content-disposition", "")
    match = _FILENAME_STAR.search(disposition)
    if match:
        return unquote(match.group(2).strip().strip('"'))
    match = _FILENAME.search(disposition)
    if match:
        return (match.group(1) or match.group(2)).strip()
    return None


def fallback_filename(extension: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return f"export_{now.strftime('%Y-%m-%d_%H%M%S')}.{extension}"


def _cell(value) -> str:
    if value is None:
        return ""
    # Tabs and newlines would break the grid when pasted.
    return re.sub(r"[\t\r\n]+", " ", str(value))


def to_tab_delimited(payload: ExportPayload) -> str:
    """Header line plus one line per row, in the payload's column order."""
    headers = [SERIAL_HEADER if col["key"] == SERIAL_FIELD else col["header"] for col in payload.columns]
    lines = ["\t".join(headers)]
    for row in payload.rows:
        lines.append("\t".join(_cell(row.get(col["key"])) for col in payload.columns))
    return "\n".join(lines)


PRINT_TEMPLATE = """<!doctype html>
<html>
  <head>
    <meta charset="utf-8">
    <title>{{ title }}</title>
    <style>
      body { font-family: -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif; color: #111; margin: 24px; }
      h1 { font-size: 18px; margin: 0 0 4px; }
      .muted { color: #666; font-size: 12px; margin-bottom: 12px; }
      table { border-collapse: collapse; width: 100%; font-size: 12px; }
      th, td { border: 1px solid #ddd; padding: 6px 8px; text-align: left; }
      th { background: #4472C4; color: #fff; }
      tr:nth-child(even) td { background: #f8f9fa; }
      @media print { body { margin: 0; } }
    </style>
  </head>
  <body>
    <h1>{{ title }}</h1>
    <div class="muted">
      Printed {{ printed_at }} &middot; {{ rows|length }} of {{ total }} rows{% if truncated %} (truncated){% endif %}
    </div>
    <table>
      <thead>
        <tr>{% for col in columns %}<th>{{ col.header }}</th>{% endfor %}</tr>
      </thead>
      <tbody>
        {% for row in rows %}
        <tr>{% for col in columns %}<td>{{ row.get(col.key) if row.get(col.key) is not none else "" }}</td>{% endfor %}</tr>
        {% endfor %}
      </tbody>
    </table>
    <script>window.onload = function () { window.print(); };</script>
  </body>
</html>
"""

_env = Environment(loader=BaseLoader(), autoescape=True)


def render_print_document(payload: ExportPayload, title: str, printed_at: Optional[datetime] = None) -> str:
    columns = [
        {"key": col["key"], "header": SERIAL_HEADER if col["key"] == SERIAL_FIELD else col["header"]}
        for col in payload.columns
    ]
    template = _env.from_string(PRINT_TEMPLATE)
    return template.render(
        title=payload.title or title,
        columns=columns,
        rows=payload.rows,
        total=payload.total,
        truncated=payload.truncated,
        printed_at=(printed_at or datetime.now()).strftime("%Y-%m-%d %H:%M"),
    )


class ExportTrigger:
    """
    Run exports for one table.

    Args:
        api: ApiClient
        endpoint: export path, e.g. "users/export/"
        controller: the TableController whose query and selection are exported
        deliverer: Deliverer (downloads, clipboard, print window)
        notifier: Notifier for loading/success/warning/error feedback
        title: report title used for printing when the server sends none
    """

    def __init__(self, api, endpoint: str, controller, deliverer, notifier, title: str = "Report"):
        self.api = api
        self.endpoint = endpoint
        self.controller = controller
        self.deliverer = deliverer
        self.notifier = notifier
        self.title = title
        self.busy = False

    def build_job(self, format: str, scope: str = SCOPE_FILTERED) -> ExportJob:
        if format not in FILE_FORMATS and format not in PAYLOAD_FORMATS:
            raise ValidationError(f"Unsupported export format: {format}", field="type")
        if scope not in (SCOPE_FILTERED, SCOPE_SELECTED):
            raise ValidationError(f"Unsupported export scope: {scope}", field="scope")

        query = self.controller.query
        if scope == SCOPE_SELECTED:
            ids = self.controller.selection.ids
            if not ids:
                raise ValidationError("Select at least one row to export.", field="ids")
            query = query.with_changes(explicit_ids=tuple(ids))
        return ExportJob(format=format, scope=scope, query=query)

    async def trigger(self, format: str, scope: str = SCOPE_FILTERED):
        """
        Run one export and report the outcome through the notifier.

        Returns the saved path (files), the copied text (clipboard), the print
        document path (print), or None when the export did not complete.
        """
        if self.busy:
            self.notifier.info("An export is already running.")
            return None

        label = LABELS.get(format, format)
        try:
            job = self.build_job(format, scope)
        except ValidationError as exc:
            self.notifier.error(exc.message)
            return None

        self.busy = True
        notice = self.notifier.loading(f"Preparing {label} export...")
        try:
            if job.is_file:
                return await self._download(job, notice, label)
            if job.format == CLIPBOARD:
                return await self._copy(job, notice)
            return await self._print(job, notice)
        except (ClipboardDenied, PopupBlocked) as exc:
            self.notifier.warning(exc.message, replace=notice)
        except DashboardError as exc:
            logger.warning(f"{label} export failed: {exc.message}", extra={"endpoint": self.endpoint})
            self.notifier.error(f"{label} export failed.", detail=exc.message, replace=notice)
        finally:
            self.busy = False
        return None

    async def _download(self, job: ExportJob, notice: int, label: str):
        response = await self.api.get_export(self.endpoint, job.params())
        filename = filename_from_response(response) or fallback_filename(FILE_FORMATS[job.format][1])
        path = self.deliverer.save_download(filename, response.content)

        self.notifier.success(f"{label} export downloaded: {path.name}", replace=notice)
        if response.headers.get("x-export-truncated", "").lower() == "true":
            total = int(response.headers.get("x-export-total", 0) or 0)
            delivered = int(response.headers.get("x-export-rows", 0) or 0)
            self._warn_truncated(ExportTruncated(delivered=delivered, total=total))
        return path

    async def _fetch_payload(self, job: ExportJob) -> ExportPayload:
        response = await self.api.get_export(self.endpoint, job.params())
        return normalize_export_payload(decode_json(response))

    async def _copy(self, job: ExportJob, notice: int) -> str:
        payload = await self._fetch_payload(job)
        text = to_tab_delimited(payload)
        self.deliverer.copy(text)
        self.notifier.success(f"Copied {len(payload.rows)} rows to the clipboard.", replace=notice)
        if payload.truncated:
            self._warn_truncated(ExportTruncated(delivered=len(payload.rows), total=payload.total))
        return text

    async def _print(self, job: ExportJob, notice: int):
        payload = await self._fetch_payload(job)
        html = render_print_document(payload, self.title)
        path = self.deliverer.print_html(html)
        self.notifier.success("Print window opened.", replace=notice)
        if payload.truncated:
            self._warn_truncated(ExportTruncated(delivered=len(payload.rows), total=payload.total))
        return path

    def _warn_truncated(self, exc: ExportTruncated) -> None:
        self.notifier.warning(exc.message)
