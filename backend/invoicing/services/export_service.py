"""Invoice list export to CSV and XLSX."""

from datetime import datetime, timezone
from typing import List, Dict, Any, Tuple
import csv
import io

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

EXPORT_COLUMNS = [
    ("invoice_number", "ნომერი"),
    ("client_name", "კლიენტი"),
    ("client_tax_id", "საიდენტიფიკაციო კოდი"),
    ("issue_date", "გამოწერის თარიღი"),
    ("due_date", "გადახდის ვადა"),
    ("status", "სტატუსი"),
    ("currency", "ვალუტა"),
    ("subtotal", "ჯამი"),
    ("vat_rate", "დღგ %"),
    ("vat_amount", "დღგ"),
    ("total", "სულ"),
    ("paid_at", "გადახდის თარიღი"),
]

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def format_csv(rows: List[Dict[str, Any]]) -> bytes:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=[key for key, _ in EXPORT_COLUMNS], extrasaction="ignore")
    writer.writerow({key: label for key, label in EXPORT_COLUMNS})
    writer.writerows(rows)
    # BOM so spreadsheet apps detect UTF-8 (Georgian headers)
    return ("﻿" + output.getvalue()).encode("utf-8")


def format_xlsx(rows: List[Dict[str, Any]]) -> bytes:
    output = io.BytesIO()

    wb = Workbook()
    ws = wb.active
    ws.title = "Invoices"

    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1E3A5F", end_color="1E3A5F", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin"),
    )

    for col, (_, label) in enumerate(EXPORT_COLUMNS, start=1):
        cell = ws.cell(row=1, column=col, value=label)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
        cell.border = thin_border

    for row_idx, row in enumerate(rows, start=2):
        for col, (key, _) in enumerate(EXPORT_COLUMNS, start=1):
            cell = ws.cell(row=row_idx, column=col, value=row.get(key))
            cell.border = thin_border

    for col, (key, label) in enumerate(EXPORT_COLUMNS, start=1):
        width = max([len(label)] + [len(str(row.get(key) or "")) for row in rows])
        ws.column_dimensions[get_column_letter(col)].width = min(width + 2, 40)
    ws.freeze_panes = "A2"

    wb.save(output)
    return output.getvalue()


def export_invoices(rows: List[Dict[str, Any]], fmt: str) -> Tuple[bytes, str, str]:
    """Return (content, media_type, filename) for the requested format."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d")
    if fmt == "xlsx":
        return format_xlsx(rows), XLSX_MEDIA_TYPE, f"invoices_{stamp}.xlsx"
    return format_csv(rows), CSV_MEDIA_TYPE, f"invoices_{stamp}.csv"
