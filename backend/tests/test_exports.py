# tests/test_exports.py
"""
Export formatter tests.

These check the artifacts themselves (CSV text, workbook cells, PDF bytes,
JSON payloads); the HTTP side is covered in test_list_views.py.
"""

import csv
import io
from datetime import datetime

import pytest
from openpyxl import load_workbook

from tables.exceptions import QueryValidationError
from tables.exports import (
    ExportFormat,
    ExportFormatter,
    create_export_response,
    export_to_csv,
    format_value,
    parse_export_type,
)
from tables.resources import ResourceSchema

GENERATED_AT = datetime(2024, 1, 2, 3, 4, 5)


class ContactSchema(ResourceSchema):
    name = "contacts"
    title = "Contacts Report"
    export_columns = [
        {"key": "serial_number", "header": "#", "width": 6, "numeric": True},
        {"key": "name", "header": "Name", "width": 25},
        {"key": "email", "header": "Email", "width": 30},
        {"key": "status", "header": "Status", "width": 12},
    ]


@pytest.fixture
def schema():
    return ContactSchema()


@pytest.fixture
def rows():
    return [
        {"id": 10, "name": "Ada Lovelace", "email": "ada@hive.test", "status": "Active"},
        {"id": 4, "name": 'O\'Brien, "Pat"', "email": "pat@hive.test", "status": "Inactive"},
        {"id": 7, "name": "Grace Hopper", "email": "grace@hive.test", "status": "Active"},
    ]


# =============================================================================
# Type parsing
# =============================================================================

@pytest.mark.parametrize(
    "value, kind",
    [
        ("csv", ExportFormat.COMMA_SEPARATED),
        ("excel", ExportFormat.SPREADSHEET),
        ("XLSX", ExportFormat.SPREADSHEET),
        ("pdf", ExportFormat.DOCUMENT),
        ("copy", ExportFormat.CLIPBOARD),
        ("print", ExportFormat.PRINT),
    ],
)
def test_parse_export_type(value, kind):
    assert parse_export_type(value) == kind


@pytest.mark.parametrize("value", [None, "", "docx", "json"])
def test_parse_export_type_rejects_unknown(value):
    with pytest.raises(QueryValidationError) as exc_info:
        parse_export_type(value)

    assert exc_info.value.field == "type"


def test_format_value():
    assert format_value(None) == ""
    assert format_value(True) == "Yes"
    assert format_value(datetime(2024, 5, 6, 7, 8, 9)) == "2024-05-06 07:08:09"
    assert format_value(3) == "3"


# =============================================================================
# CSV & clipboard payload
# =============================================================================

def test_csv_matches_clipboard_payload(schema, rows):
    formatter = ExportFormatter()

    csv_artifact = formatter.format(rows, ExportFormat.COMMA_SEPARATED, schema, generated_at=GENERATED_AT)
    payload = formatter.format(rows, ExportFormat.CLIPBOARD, schema).content

    assert csv_artifact.content.startswith(b"\xef\xbb\xbf")
    parsed = list(csv.reader(io.StringIO(csv_artifact.content.decode("utf-8-sig"))))

    assert parsed[0] == [col["header"] for col in payload["columns"]]
    assert parsed[1:] == [
        [format_value(row[col["key"]]) for col in payload["columns"]]
        for row in payload["data"]
    ]
    assert [line[0] for line in parsed[1:]] == ["1", "2", "3"]


def test_csv_quotes_embedded_delimiters(schema, rows):
    text = export_to_csv(rows, schema.export_columns)

    assert '"O\'Brien, ""Pat"""' in text


def test_payload_shape(schema, rows):
    artifact = ExportFormatter().format(rows, ExportFormat.PRINT, schema, total=3)

    assert artifact.filename is None
    assert not artifact.is_file
    assert artifact.content["meta"] == {"title": "Contacts Report", "total": 3, "truncated": False}
    assert [col["key"] for col in artifact.content["columns"]] == ["serial_number", "name", "email", "status"]
    assert [row["id"] for row in artifact.content["data"]] == [10, 4, 7]


# =============================================================================
# Serials, caps & truncation
# =============================================================================

def test_export_renumbers_rows_from_one(schema, rows):
    stale = [{**row, "serial_number": 40 + index} for index, row in enumerate(rows)]

    artifact = ExportFormatter().format(stale, ExportFormat.CLIPBOARD, schema)

    assert [row["serial_number"] for row in artifact.content["data"]] == [1, 2, 3]


def test_document_is_truncated_at_cap(schema):
    many = [{"id": i, "name": f"Contact {i}", "email": f"c{i}@hive.test", "status": "Active"} for i in range(60)]

    artifact = ExportFormatter(document_row_cap=50).format(
        many, ExportFormat.DOCUMENT, schema, total=6000, generated_at=GENERATED_AT
    )

    assert artifact.content.startswith(b"%PDF")
    assert artifact.row_count == 50
    assert artifact.total == 6000
    assert artifact.truncated


def test_default_caps():
    formatter = ExportFormatter()

    assert formatter.cap_for(ExportFormat.DOCUMENT) == 5000
    assert formatter.cap_for(ExportFormat.CLIPBOARD) == 10000
    assert formatter.cap_for(ExportFormat.SPREADSHEET) == 100000


def test_total_never_below_row_count(schema, rows):
    artifact = ExportFormatter().format(rows, ExportFormat.CLIPBOARD, schema, total=1)

    assert artifact.total == 3
    assert not artifact.truncated


def test_pdf_escapes_markup(schema):
    artifact = ExportFormatter().format(
        [{"id": 1, "name": "<b>bold</b> & co", "email": "x@hive.test", "status": "Active"}],
        ExportFormat.DOCUMENT,
        schema,
    )

    assert artifact.content.startswith(b"%PDF")


# =============================================================================
# Spreadsheet
# =============================================================================

def _sheet_rows(content):
    sheet = load_workbook(io.BytesIO(content)).active
    return [list(row) for row in sheet.iter_rows(min_row=4, values_only=True)]


def test_spreadsheet_layout(schema, rows):
    artifact = ExportFormatter().format(rows, ExportFormat.SPREADSHEET, schema, generated_at=GENERATED_AT)
    sheet = load_workbook(io.BytesIO(artifact.content)).active

    assert sheet["A1"].value == "Contacts Report"
    assert sheet["A2"].value == "Exported: 2024-01-02 03:04:05"
    assert sheet.freeze_panes == "A5"
    assert _sheet_rows(artifact.content)[0] == ["#", "Name", "Email", "Status"]
    assert _sheet_rows(artifact.content)[1] == ["1", "Ada Lovelace", "ada@hive.test", "Active"]


def test_spreadsheet_export_is_repeatable(schema, rows):
    formatter = ExportFormatter()

    first = formatter.format(rows, ExportFormat.SPREADSHEET, schema, generated_at=GENERATED_AT)
    second = formatter.format(rows, ExportFormat.SPREADSHEET, schema, generated_at=GENERATED_AT)

    assert _sheet_rows(first.content) == _sheet_rows(second.content)


# =============================================================================
# Filenames & responses
# =============================================================================

@pytest.mark.parametrize(
    "kind, extension",
    [
        (ExportFormat.SPREADSHEET, "xlsx"),
        (ExportFormat.COMMA_SEPARATED, "csv"),
        (ExportFormat.DOCUMENT, "pdf"),
    ],
)
def test_filename_pattern(schema, kind, extension):
    assert ExportFormatter().filename(schema, kind, GENERATED_AT) == f"contacts_report_2024-01-02_030405.{extension}"


def test_file_response_headers(schema, rows):
    artifact = ExportFormatter().format(
        rows, ExportFormat.COMMA_SEPARATED, schema, total=8, generated_at=GENERATED_AT
    )

    response = create_export_response(artifact)

    assert response["Content-Disposition"] == 'attachment; filename="contacts_report_2024-01-02_030405.csv"'
    assert response["Content-Type"] == "text/csv; charset=utf-8"
    assert response["X-Export-Total"] == "8"
    assert response["X-Export-Rows"] == "3"
    assert response["X-Export-Truncated"] == "true"
