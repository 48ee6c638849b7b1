"""
Export utilities for table data.
Supports Excel (.xlsx), CSV (.csv), PDF (.pdf) and JSON payloads for the
dashboard's copy and print actions.

Exported columns come from the resource schema, never from the dashboard's
current column visibility, so an export looks the same whatever the table
happened to show.
"""
import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from django.conf import settings
from django.http import HttpResponse
from django.utils import timezone
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from rest_framework.response import Response

from .exceptions import QueryValidationError
from .resolver import number_rows


class ExportFormat:
    SPREADSHEET = 'spreadsheet'
    COMMA_SEPARATED = 'commaSeparated'
    DOCUMENT = 'document'
    CLIPBOARD = 'clipboardPayload'
    PRINT = 'printPayload'

    CHOICES = [SPREADSHEET, COMMA_SEPARATED, DOCUMENT, CLIPBOARD, PRINT]
    FILE_FORMATS = [SPREADSHEET, COMMA_SEPARATED, DOCUMENT]
    PAYLOAD_FORMATS = [CLIPBOARD, PRINT]

    # Values accepted in the `type` query param.
    TYPES = {
        'csv': COMMA_SEPARATED,
        'excel': SPREADSHEET,
        'xlsx': SPREADSHEET,
        'pdf': DOCUMENT,
        'print': PRINT,
        'copy': CLIPBOARD,
    }
    EXTENSIONS = {
        SPREADSHEET: 'xlsx',
        COMMA_SEPARATED: 'csv',
        DOCUMENT: 'pdf',
    }
    CONTENT_TYPES = {
        SPREADSHEET: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        COMMA_SEPARATED: 'text/csv; charset=utf-8',
        DOCUMENT: 'application/pdf',
        CLIPBOARD: 'application/json',
        PRINT: 'application/json',
    }


def parse_export_type(value: Optional[str]) -> str:
    """Map the `type` query param to an ExportFormat, rejecting anything else."""
    kind = ExportFormat.TYPES.get((value or '').lower())
    if kind is None:
        raise QueryValidationError(
            f"Invalid export type. Must be one of: {', '.join(ExportFormat.TYPES)}",
            field='type',
        )
    return kind


def format_value(value: Any) -> str:
    """Format a value for export."""
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, date):
        return value.strftime('%Y-%m-%d')
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    return str(value)


def export_to_excel(
    data: list[dict],
    columns: list[dict],
    title: str = 'Export',
    sheet_name: str = 'Data',
    generated_at: Optional[datetime] = None,
) -> bytes:
    """
    Export data to Excel format.

    Args:
        data: List of dictionaries containing the data
        columns: List of column definitions with 'key', 'header', and optional 'width'
        title: Title for the export (used in header row)
        sheet_name: Name of the worksheet
        generated_at: Timestamp printed under the title

    Returns:
        Bytes of the Excel file
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name

    # Styles
    header_font = Font(bold=True, color='FFFFFF')
    header_fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
    header_alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    # Title row
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
    title_cell = ws.cell(row=1, column=1, value=title)
    title_cell.font = Font(bold=True, size=14)
    title_cell.alignment = Alignment(horizontal='center')

    # Export timestamp
    generated_at = generated_at or timezone.now()
    ws.merge_cells(start_row=2, start_column=1, end_row=2, end_column=len(columns))
    timestamp_cell = ws.cell(row=2, column=1, value=f"Exported: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}")
    timestamp_cell.alignment = Alignment(horizontal='center')
    timestamp_cell.font = Font(italic=True, size=10, color='666666')

    # Header row
    header_row = 4
    for col_idx, col in enumerate(columns, 1):
        cell = ws.cell(row=header_row, column=col_idx, value=col['header'])
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border

        width = col.get('width', 15)
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    # Data rows
    for row_idx, row_data in enumerate(data, header_row + 1):
        for col_idx, col in enumerate(columns, 1):
            value = row_data.get(col['key'], '')
            cell = ws.cell(row=row_idx, column=col_idx, value=format_value(value))
            cell.border = thin_border

            if col.get('numeric'):
                cell.alignment = Alignment(horizontal='right')

    # Freeze header row
    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


def export_to_csv(
    data: list[dict],
    columns: list[dict],
    delimiter: str = ',',
) -> str:
    """
    Export data to CSV format.

    Args:
        data: List of dictionaries containing the data
        columns: List of column definitions with 'key' and 'header'
        delimiter: CSV delimiter character

    Returns:
        CSV string
    """
    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL)

    writer.writerow([col['header'] for col in columns])

    for row_data in data:
        row = [format_value(row_data.get(col['key'], '')) for col in columns]
        writer.writerow(row)

    return output.getvalue()


def export_to_pdf(
    data: list[dict],
    columns: list[dict],
    title: str = 'Export',
    generated_at: Optional[datetime] = None,
) -> bytes:
    """
    Export data to a landscape A4 PDF table.

    Column widths are proportional to each column's 'width'. The header row
    repeats on every page.
    """
    output = io.BytesIO()
    doc = SimpleDocTemplate(
        output,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        title=title,
    )
    styles = getSampleStyleSheet()
    cell_style = styles['BodyText'].clone('cell', fontSize=8, leading=10)

    generated_at = generated_at or timezone.now()
    story = [
        Paragraph(title, styles['Title']),
        Paragraph(f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}", styles['Normal']),
        Spacer(1, 6 * mm),
    ]

    total_width = sum(col.get('width', 15) for col in columns)
    col_widths = [doc.width * col.get('width', 15) / total_width for col in columns]

    table_data = [[col['header'] for col in columns]]
    for row_data in data:
        table_data.append([
            Paragraph(_escape(format_value(row_data.get(col['key'], ''))), cell_style)
            for col in columns
        ])

    table = Table(table_data, colWidths=col_widths, repeatRows=1)
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#4472C4')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 9),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('GRID', (0, 0), (-1, -1), 0.25, colors.HexColor('#CCCCCC')),
        ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#F8F9FA')]),
    ]))
    story.append(table)

    doc.build(story)
    return output.getvalue()


def _escape(text: str) -> str:
    # Paragraph parses a small XML dialect.
    return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')


# =============================================================================
# Formatter
# =============================================================================

@dataclass
class ExportArtifact:
    kind: str
    content: Any  # bytes for files, dict for JSON payloads
    content_type: str
    filename: Optional[str]
    row_count: int
    total: int
    truncated: bool = False

    @property
    def is_file(self) -> bool:
        return self.kind in ExportFormat.FILE_FORMATS


class ExportFormatter:
    """
    Turn resolved rows into an export artifact.

    Serial numbers are recomputed from output position on every call. The
    document format is capped (default 5,000 rows); beyond the cap the
    artifact is truncated and flagged instead of failing.
    """

    def __init__(self, document_row_cap: int = 5000, payload_row_cap: int = 10000, file_row_cap: int = 100000):
        self.caps = {
            ExportFormat.SPREADSHEET: file_row_cap,
            ExportFormat.COMMA_SEPARATED: file_row_cap,
            ExportFormat.DOCUMENT: document_row_cap,
            ExportFormat.CLIPBOARD: payload_row_cap,
            ExportFormat.PRINT: payload_row_cap,
        }

    @classmethod
    def from_settings(cls) -> "ExportFormatter":
        tables = settings.TABLES
        return cls(
            document_row_cap=tables["DOCUMENT_ROW_CAP"],
            payload_row_cap=tables["PAYLOAD_ROW_CAP"],
            file_row_cap=tables["FILE_ROW_CAP"],
        )

    def cap_for(self, kind: str) -> int:
        return self.caps[kind]

    def filename(self, schema, kind: str, generated_at: datetime) -> str:
        return f"{schema.name}_report_{generated_at.strftime('%Y-%m-%d_%H%M%S')}.{ExportFormat.EXTENSIONS[kind]}"

    def format(
        self,
        rows: list[dict],
        kind: str,
        schema,
        total: Optional[int] = None,
        title: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> ExportArtifact:
        if kind not in ExportFormat.CHOICES:
            raise QueryValidationError(f"Unsupported export format: {kind}", field='type')

        cap = self.cap_for(kind)
        total = len(rows) if total is None else max(total, len(rows))
        data = number_rows(rows[:cap])
        truncated = total > len(data)

        title = title or schema.title
        generated_at = generated_at or timezone.now()
        columns = schema.export_columns

        if kind == ExportFormat.SPREADSHEET:
            content = export_to_excel(data, columns, title=title, generated_at=generated_at)
        elif kind == ExportFormat.COMMA_SEPARATED:
            # BOM for Excel compatibility
            content = export_to_csv(data, columns).encode('utf-8-sig')
        elif kind == ExportFormat.DOCUMENT:
            content = export_to_pdf(data, columns, title=title, generated_at=generated_at)
        else:
            content = {
                'data': data,
                'columns': schema.payload_columns,
                'meta': {
                    'title': title,
                    'total': total,
                    'truncated': truncated,
                },
            }

        return ExportArtifact(
            kind=kind,
            content=content,
            content_type=ExportFormat.CONTENT_TYPES[kind],
            filename=self.filename(schema, kind, generated_at) if kind in ExportFormat.FILE_FORMATS else None,
            row_count=len(data),
            total=total,
            truncated=truncated,
        )


def create_export_response(artifact: ExportArtifact):
    """
    Create an HTTP response for an export artifact.

    Files get a Content-Disposition filename plus X-Export-Total, X-Export-Rows and
    X-Export-Truncated headers; payloads are plain JSON.
    """
    if not artifact.is_file:
        return Response(artifact.content)

    response = HttpResponse(artifact.content, content_type=artifact.content_type)
    response['Content-Disposition'] = f'attachment; filename="{artifact.filename}"'
    response['X-Export-Total'] = str(artifact.total)
    response['X-Export-Rows'] = str(artifact.row_count)
    response['X-Export-Truncated'] = 'true' if artifact.truncated else 'false'
    return response
