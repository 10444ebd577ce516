"""
Utility to generate the cabinet stock report PDF using reportlab.
Same columns as the Excel export.
"""

from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from medsupply.schemas.cabinet_stock import CabinetStockReport
from medsupply.utils.datetime_utils import format_report_date

TABLE_HEADERS = [
    "#",
    "Department",
    "Item Code",
    "Item",
    "Balance",
    "In Use",
    "Damaged",
    "Max",
    "Min",
    "Refill",
]


def generate_cabinet_stock_pdf(
    report: CabinetStockReport,
    hospital_name: str = "Hospital",
) -> BytesIO:
    """
    Generate a PDF from cabinet stock report data.
    Returns a BytesIO buffer containing the PDF.
    """
    buffer = BytesIO()

    doc = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        rightMargin=12 * mm,
        leftMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
    )

    elements = []

    # Styles
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReportTitle",
        parent=styles["Heading1"],
        fontSize=16,
        textColor=colors.black,
        spaceAfter=6,
        fontName="Helvetica-Bold",
    )
    normal_style = ParagraphStyle(
        "ReportNormal",
        parent=styles["Normal"],
        fontSize=9,
        textColor=colors.black,
        spaceAfter=4,
    )
    cell_style = ParagraphStyle(
        "ReportCell",
        parent=styles["Normal"],
        fontSize=8,
        leading=10,
    )

    # Header
    elements.append(Paragraph(f"{escape(hospital_name)} - Cabinet Stock Report", title_style))
    f = report.filters
    elements.append(
        Paragraph(
            f"Report date: {format_report_date(report.report_date)} &nbsp;&nbsp; "
            f"Cabinet: {escape(f.cabinetName or f.cabinetCode or 'All')} &nbsp;&nbsp; "
            f"Department: {escape(f.departmentName or 'All')}",
            normal_style,
        )
    )
    elements.append(Spacer(1, 4 * mm))

    # Table
    table_data = [TABLE_HEADERS]
    for r in report.data:
        table_data.append(
            [
                str(r.seq),
                Paragraph(escape(r.department_name), cell_style),
                r.item_code,
                Paragraph(escape(r.item_name or "-"), cell_style),
                str(r.balance_qty),
                str(r.qty_in_use),
                str(r.damaged_qty),
                str(r.stock_max),
                "-" if r.stock_min is None else str(r.stock_min),
                str(r.refill_qty),
            ]
        )
    if not report.data:
        table_data.append(["", "No items found", "", "", "", "", "", "", "", ""])

    table = Table(
        table_data,
        colWidths=[10 * mm, 45 * mm, 28 * mm, 80 * mm, 18 * mm, 18 * mm, 18 * mm, 16 * mm, 16 * mm, 18 * mm],
        repeatRows=1,
    )
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1A365D")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ALIGN", (4, 1), (-1, -1), "RIGHT"),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F8F9FA")]),
            ]
        )
    )
    elements.append(table)
    elements.append(Spacer(1, 4 * mm))

    # Summary
    s = report.summary
    elements.append(
        Paragraph(
            f"Total rows: {s.total_rows} &nbsp;&nbsp; Total balance: {s.total_qty} "
            f"&nbsp;&nbsp; Total refill: {s.total_refill_qty}",
            normal_style,
        )
    )

    doc.build(elements)
    buffer.seek(0)
    return buffer
