# schemas/cabinet_stock.py
from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

CabinetCodeStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=100),
]


class CabinetStockReportRequest(BaseModel):
    """
    Filters accepted by the cabinet stock report endpoints.

    Field names follow the camelCase body the web client sends; snake_case
    is accepted as well.
    """

    cabinet_id: Optional[int] = Field(default=None, alias="cabinetId", gt=0)
    cabinet_code: Optional[CabinetCodeStr] = Field(default=None, alias="cabinetCode")
    department_id: Optional[int] = Field(default=None, alias="departmentId", gt=0)
    report_date: Optional[date] = Field(default=None, alias="reportDate")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("cabinet_code")
    @classmethod
    def empty_code_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return v


class CabinetStockFilters(BaseModel):
    cabinetId: Optional[int] = None
    cabinetCode: Optional[str] = None
    cabinetName: Optional[str] = None
    departmentId: Optional[int] = None
    departmentName: Optional[str] = None


class CabinetStockSummary(BaseModel):
    total_rows: int = 0
    total_qty: int = 0
    total_refill_qty: int = 0


class CabinetStockRow(BaseModel):
    """
    One reconciled (department, item) line of the report.

    ``refill_qty`` may be negative when the balance is above the max level.
    ``stock_min`` is None when no override exists for the row.
    """

    seq: int
    department_name: str
    item_code: str
    item_name: Optional[str] = None
    balance_qty: int
    qty_in_use: int
    damaged_qty: int
    stock_max: int
    stock_min: Optional[int] = None
    refill_qty: int


class CabinetStockReport(BaseModel):
    report_date: date
    filters: CabinetStockFilters
    summary: CabinetStockSummary
    data: list[CabinetStockRow] = []


class CabinetStockReportResponse(BaseModel):
    success: bool = True
    data: CabinetStockReport
