from __future__ import annotations

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from medsupply.schemas.cabinet_stock import CabinetStockReport
from medsupply.utils.datetime_utils import format_report_date

HEADERS = [
    "Seq",
    "Department",
    "Item Code",
    "Item",
    "Balance",
    "In Use",
    "Damaged",
    "Stock Max",
    "Stock Min",
    "Refill Qty",
]
COLUMN_WIDTHS = [8, 24, 16, 40, 12, 12, 12, 12, 12, 12]


def _filter_line(report: CabinetStockReport) -> str:
    f = report.filters
    cabinet = f.cabinetName or f.cabinetCode or "All"
    department = f.departmentName or (str(f.departmentId) if f.departmentId else "All")
    return f"Cabinet: {cabinet}    Department: {department}"


def build_cabinet_stock_excel(report: CabinetStockReport) -> BytesIO:
    wb = Workbook()
    ws = wb.active
    ws.title = "Cabinet Stock"

    ws.append(["Cabinet Stock Report"])
    ws["A1"].font = Font(size=14, bold=True)
    ws.append([f"Report date: {format_report_date(report.report_date)}"])
    ws.append([_filter_line(report)])
    ws.append([])

    ws.append(HEADERS)
    header_row = ws.max_row
    for cell in ws[header_row]:
        cell.font = Font(bold=True)
        cell.alignment = Alignment(horizontal="center")

    for r in report.data:
        ws.append([
            r.seq,
            r.department_name,
            r.item_code,
            r.item_name or "",
            r.balance_qty,
            r.qty_in_use,
            r.damaged_qty,
            r.stock_max,
            "-" if r.stock_min is None else r.stock_min,
            r.refill_qty,
        ])

    s = report.summary
    ws.append([])
    ws.append(["", "Total rows", s.total_rows, "Total balance", s.total_qty,
                "", "", "", "Total refill", s.total_refill_qty])
    ws.cell(row=ws.max_row, column=2).font = Font(bold=True)

    for col, width in enumerate(COLUMN_WIDTHS, start=1):
        ws.column_dimensions[get_column_letter(col)].width = width
    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    buffer = BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    return buffer
