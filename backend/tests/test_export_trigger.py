# tests/test_export_trigger.py
"""
Export Trigger tests: downloads, clipboard, print and feedback.
"""

import asyncio
from datetime import datetime
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
import pyperclip
import pytest

from dashboard.delivery import Deliverer
from dashboard.envelope import normalize_export_payload
from dashboard.exceptions import ClipboardDenied, RequestFailed
from dashboard.export import (
    ExportTrigger,
    fallback_filename,
    filename_from_response,
    render_print_document,
    to_tab_delimited,
)
from dashboard.feedback import ERROR, INFO, SUCCESS, WARNING, Notifier
from dashboard.table import TableController

PAYLOAD = {
    "data": [
        {"id": 12, "serial_number": 1, "name": "Ada Lovelace", "email": "ada@hive.test"},
        {"id": 4, "serial_number": 2, "name": "Grace\tHopper", "email": None},
    ],
    "columns": [
        {"key": "serial_number", "header": "#"},
        {"key": "name", "header": "Name"},
        {"key": "email", "header": "Email"},
    ],
    "meta": {"title": "Users Report", "total": 2, "truncated": False},
}


class FakeApi:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def get_export(self, endpoint, params):
        self.calls.append((endpoint, params))
        if self.error is not None:
            raise self.error
        return self.response


class FakeClipboard:
    def __init__(self, fail=False):
        self.fail = fail
        self.copied = []

    def copy(self, text):
        if self.fail:
            raise pyperclip.PyperclipException("no clipboard mechanism")
        self.copied.append(text)


class FakeBrowser:
    def __init__(self, opens=True):
        self.opens = opens
        self.opened = []

    def open_new(self, uri):
        self.opened.append(uri)
        return self.opens


class NoSource:
    async def fetch_page(self, params):
        raise AssertionError("the table is not refreshed by exports")


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def controller():
    return TableController(NoSource())


def make_trigger(api, controller, notifier, tmp_path, clipboard=None, fallback=None, browser=None):
    deliverer = Deliverer(
        tmp_path,
        clipboard=clipboard or FakeClipboard(),
        fallback_copy=fallback or (lambda text: None),
        browser=browser or FakeBrowser(),
    )
    return ExportTrigger(api, "users/export/", controller, deliverer, notifier, title="Users")


def file_response(content=b"a,b\n", **headers):
    return httpx.Response(200, content=content, headers=headers)


# =============================================================================
# Helpers
# =============================================================================

def test_filename_from_response():
    plain = file_response(**{"content-disposition": 'attachment; filename="users_report_2024-01-02_030405.csv"'})
    encoded = file_response(**{"content-disposition": "attachment; filename*=UTF-8''r%C3%B4les.xlsx"})

    assert filename_from_response(plain) == "users_report_2024-01-02_030405.csv"
    assert filename_from_response(encoded) == "rôles.xlsx"
    assert filename_from_response(file_response()) is None


def test_tab_delimited_excludes_internal_fields():
    text = to_tab_delimited(normalize_export_payload(PAYLOAD))

    assert text.split("\n") == [
        "#\tName\tEmail",
        "1\tAda Lovelace\tada@hive.test",
        "2\tGrace Hopper\t",
    ]


def test_legacy_payload_columns_are_derived():
    payload = normalize_export_payload([{"id": 1, "serial_number": 1, "full_name": "Ada"}])

    assert payload.columns == [
        {"key": "serial_number", "header": "#"},
        {"key": "full_name", "header": "Full Name"},
    ]


def test_print_document_escapes_values():
    payload = normalize_export_payload({**PAYLOAD, "data": [{"serial_number": 1, "name": "<script>", "email": ""}]})

    html = render_print_document(payload, "Users")

    assert "&lt;script&gt;" in html
    assert "window.print()" in html
    assert "<title>Users Report</title>" in html


# =============================================================================
# Downloads
# =============================================================================

@pytest.mark.asyncio
async def test_download_saves_server_filename(controller, notifier, tmp_path):
    response = file_response(
        b"#,Name\n1,Ada\n",
        **{
            "content-disposition": 'attachment; filename="users_report_2024-01-02_030405.csv"',
            "x-export-truncated": "false",
        },
    )
    api = FakeApi(response)
    trigger = make_trigger(api, controller, notifier, tmp_path)

    path = await trigger.trigger("commaSeparated")

    assert path == tmp_path / "users_report_2024-01-02_030405.csv"
    assert path.read_bytes() == b"#,Name\n1,Ada\n"
    assert api.calls[0][1]["type"] == "csv"
    assert notifier.levels() == [SUCCESS]
    assert not trigger.busy


@pytest.mark.asyncio
async def test_download_without_filename_uses_fallback(controller, notifier, tmp_path):
    trigger = make_trigger(FakeApi(file_response(b"%PDF")), controller, notifier, tmp_path)

    path = await trigger.trigger("document")

    assert path.name.startswith("export_")
    assert path.suffix == ".pdf"


def test_fallback_filename_pattern():
    assert fallback_filename("xlsx", datetime(2024, 1, 2, 3, 4, 5)) == "export_2024-01-02_030405.xlsx"


@pytest.mark.asyncio
async def test_server_path_components_are_ignored(controller, notifier, tmp_path):
    response = file_response(**{"content-disposition": 'attachment; filename="../../etc/passwd"'})
    trigger = make_trigger(FakeApi(response), controller, notifier, tmp_path)

    path = await trigger.trigger("spreadsheet")

    assert path == tmp_path / "passwd"


@pytest.mark.asyncio
async def test_existing_download_is_not_overwritten(controller, notifier, tmp_path):
    (tmp_path / "report.csv").write_bytes(b"old")
    response = file_response(b"new", **{"content-disposition": 'attachment; filename="report.csv"'})
    trigger = make_trigger(FakeApi(response), controller, notifier, tmp_path)

    path = await trigger.trigger("commaSeparated")

    assert path.name == "report (1).csv"
    assert (tmp_path / "report.csv").read_bytes() == b"old"


@pytest.mark.asyncio
async def test_truncated_download_warns(controller, notifier, tmp_path):
    response = file_response(
        **{
            "content-disposition": 'attachment; filename="users.pdf"',
            "x-export-truncated": "true",
            "x-export-total": "6000",
            "x-export-rows": "5000",
        }
    )
    trigger = make_trigger(FakeApi(response), controller, notifier, tmp_path)

    await trigger.trigger("document")

    assert notifier.levels() == [SUCCESS, WARNING]
    warning = list(notifier.notices.values())[-1]
    assert "5000 of 6000" in warning.message


@pytest.mark.asyncio
async def test_failed_export_reports_error_and_clears_busy(controller, notifier, tmp_path):
    api = FakeApi(error=RequestFailed("The server took too long to respond. Please try again."))
    trigger = make_trigger(api, controller, notifier, tmp_path)

    assert await trigger.trigger("spreadsheet") is None

    assert notifier.levels() == [ERROR]
    assert list(notifier.notices.values())[0].detail == "The server took too long to respond. Please try again."
    assert not trigger.busy


# =============================================================================
# Busy flag & validation
# =============================================================================

@pytest.mark.asyncio
async def test_second_export_while_busy_is_refused(controller, notifier, tmp_path):
    gate = asyncio.Event()

    class SlowApi(FakeApi):
        async def get_export(self, endpoint, params):
            await gate.wait()
            return await super().get_export(endpoint, params)

    api = SlowApi(file_response(**{"content-disposition": 'attachment; filename="a.csv"'}))
    trigger = make_trigger(api, controller, notifier, tmp_path)

    first = asyncio.ensure_future(trigger.trigger("commaSeparated"))
    await asyncio.sleep(0)
    assert trigger.busy
    assert not controller.loading

    assert await trigger.trigger("commaSeparated") is None
    assert INFO in notifier.levels()

    gate.set()
    assert (await first).name == "a.csv"
    assert len(api.calls) == 1
    assert not trigger.busy


@pytest.mark.asyncio
async def test_selected_scope_requires_a_selection(controller, notifier, tmp_path):
    api = FakeApi()
    trigger = make_trigger(api, controller, notifier, tmp_path)

    assert await trigger.trigger("commaSeparated", scope="selected") is None

    assert notifier.levels() == [ERROR]
    assert api.calls == []


@pytest.mark.asyncio
async def test_unknown_format_is_rejected(controller, notifier, tmp_path):
    api = FakeApi()
    trigger = make_trigger(api, controller, notifier, tmp_path)

    assert await trigger.trigger("docx") is None
    assert api.calls == []


@pytest.mark.asyncio
async def test_selected_scope_sends_ids(controller, notifier, tmp_path):
    controller.toggle(9)
    controller.toggle(4)
    api = FakeApi(httpx.Response(200, json=PAYLOAD))
    trigger = make_trigger(api, controller, notifier, tmp_path)

    await trigger.trigger("clipboardPayload", scope="selected")

    assert api.calls[0][1]["ids"] == "9,4"
    assert api.calls[0][1]["type"] == "copy"


# =============================================================================
# Clipboard & print
# =============================================================================

@pytest.mark.asyncio
async def test_copy_uses_system_clipboard(controller, notifier, tmp_path):
    clipboard = FakeClipboard()
    trigger = make_trigger(FakeApi(httpx.Response(200, json=PAYLOAD)), controller, notifier, tmp_path, clipboard=clipboard)

    text = await trigger.trigger("clipboardPayload")

    assert clipboard.copied == [text]
    assert text.startswith("#\tName\tEmail")
    assert notifier.levels() == [SUCCESS]


@pytest.mark.asyncio
async def test_copy_falls_back_when_clipboard_unavailable(controller, notifier, tmp_path):
    fallback_texts = []
    trigger = make_trigger(
        FakeApi(httpx.Response(200, json=PAYLOAD)), controller, notifier, tmp_path,
        clipboard=FakeClipboard(fail=True), fallback=fallback_texts.append,
    )

    text = await trigger.trigger("clipboardPayload")

    assert fallback_texts == [text]
    assert notifier.levels() == [SUCCESS]


@pytest.mark.asyncio
async def test_copy_denied_is_a_warning(controller, notifier, tmp_path):
    def deny(text):
        raise ClipboardDenied()

    trigger = make_trigger(
        FakeApi(httpx.Response(200, json=PAYLOAD)), controller, notifier, tmp_path,
        clipboard=FakeClipboard(fail=True), fallback=deny,
    )

    assert await trigger.trigger("clipboardPayload") is None
    assert notifier.levels() == [WARNING]
    assert not trigger.busy


@pytest.mark.asyncio
async def test_print_opens_browser_window(controller, notifier, tmp_path):
    browser = FakeBrowser()
    trigger = make_trigger(FakeApi(httpx.Response(200, json=PAYLOAD)), controller, notifier, tmp_path, browser=browser)

    path = await trigger.trigger("printPayload")

    assert browser.opened == [path.as_uri()]
    assert "Ada Lovelace" in path.read_text(encoding="utf-8")
    assert notifier.levels() == [SUCCESS]


@pytest.mark.asyncio
async def test_blocked_print_window_is_a_warning(controller, notifier, tmp_path):
    browser = FakeBrowser(opens=False)
    trigger = make_trigger(FakeApi(httpx.Response(200, json=PAYLOAD)), controller, notifier, tmp_path, browser=browser)

    assert await trigger.trigger("printPayload") is None
    assert notifier.levels() == [WARNING]
    assert not Path(unquote(urlparse(browser.opened[0]).path)).exists()


@pytest.mark.asyncio
async def test_truncated_payload_warns(controller, notifier, tmp_path):
    truncated = {**PAYLOAD, "meta": {"title": "Users Report", "total": 12000, "truncated": True}}
    trigger = make_trigger(FakeApi(httpx.Response(200, json=truncated)), controller, notifier, tmp_path)

    await trigger.trigger("clipboardPayload")

    assert notifier.levels() == [SUCCESS, WARNING]


@pytest.mark.parametrize("export_format", ["printPayload", "clipboardPayload"])
@pytest.mark.asyncio
async def test_unreadable_payload_is_an_error(export_format, controller, notifier, tmp_path):
    html = httpx.Response(200, content=b"<html>oops</html>", headers={"content-type": "text/html"})
    trigger = make_trigger(FakeApi(html), controller, notifier, tmp_path)

    assert await trigger.trigger(export_format) is None

    assert notifier.levels() == [ERROR]
    assert not trigger.busy


@pytest.mark.asyncio
async def test_payload_without_rows_is_an_error(controller, notifier, tmp_path):
    trigger = make_trigger(FakeApi(httpx.Response(200, json={"meta": {}})), controller, notifier, tmp_path)

    assert await trigger.trigger("printPayload") is None
    assert notifier.levels() == [ERROR]
