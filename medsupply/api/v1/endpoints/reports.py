# medsupply/api/v1/endpoints/reports.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from medsupply.core.database import get_db
from medsupply.schemas.cabinet_stock import (
    CabinetStockReport,
    CabinetStockReportRequest,
    CabinetStockReportResponse,
)
from medsupply.services.cabinet_stock_service import (
    CabinetStockReportError,
    compute_cabinet_stock_report,
)
from medsupply.utils.cabinet_stock_excel import build_cabinet_stock_excel
from medsupply.utils.cabinet_stock_pdf import generate_cabinet_stock_pdf
from medsupply.utils.datetime_utils import format_report_date

router = APIRouter()

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
REPORT_UNAVAILABLE = "Failed to get cabinet stock report data"


def _load_report(db: Session, payload: CabinetStockReportRequest) -> CabinetStockReport:
    try:
        return compute_cabinet_stock_report(
            db,
            cabinet_id=payload.cabinet_id,
            cabinet_code=payload.cabinet_code,
            department_id=payload.department_id,
            as_of=payload.report_date,
        )
    except CabinetStockReportError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=REPORT_UNAVAILABLE,
        ) from e


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.post(
    "/cabinet-stock/data",
    response_model=CabinetStockReportResponse,
)
def get_cabinet_stock_data(
    payload: CabinetStockReportRequest,
    db: Session = Depends(get_db),
) -> CabinetStockReportResponse:
    """
    Cabinet stock report rows with refill quantities, as JSON.

    Filters: cabinetId / cabinetCode / departmentId (all optional).
    Department takes precedence over cabinet when both are given.
    """
    report = _load_report(db, payload)
    return CabinetStockReportResponse(success=True, data=report)


@router.post("/cabinet-stock/excel")
def export_cabinet_stock_excel(
    payload: CabinetStockReportRequest,
    db: Session = Depends(get_db),
):
    """
    Cabinet stock report as an .xlsx download.
    """
    report = _load_report(db, payload)
    buffer = build_cabinet_stock_excel(report)
    filename = f"cabinet_stock_report_{format_report_date(report.report_date)}.xlsx"
    return StreamingResponse(buffer, media_type=XLSX_MEDIA_TYPE, headers=_attachment(filename))


@router.post("/cabinet-stock/pdf")
def export_cabinet_stock_pdf(
    payload: CabinetStockReportRequest,
    db: Session = Depends(get_db),
):
    """
    Cabinet stock report as a PDF download.
    """
    report = _load_report(db, payload)
    buffer = generate_cabinet_stock_pdf(report)
    filename = f"cabinet_stock_report_{format_report_date(report.report_date)}.pdf"
    return StreamingResponse(buffer, media_type="application/pdf", headers=_attachment(filename))
