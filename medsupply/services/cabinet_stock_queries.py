# medsupply/services/cabinet_stock_queries.py
"""
Read queries over the supply tables used by the cabinet stock report.

Each function is a plain fetch with no side effects. SQLAlchemy errors are
left to propagate; the report service decides how to surface them.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from medsupply.core.redis import cached_reference
from medsupply.models.cabinet import (
    AssignmentStatus,
    Cabinet,
    CabinetDepartment,
    CabinetItemSetting,
)
from medsupply.models.department import Department
from medsupply.models.item import Item, ItemStock
from medsupply.models.supply_usage import (
    MedicalSupplyUsage,
    SupplyItemReturnRecord,
    SupplyUsageItem,
)
from medsupply.utils.datetime_utils import day_bounds

# Usage lines in any of these statuses (compared lower-cased) never count.
CANCELLED_USAGE_STATUSES = frozenset(
    {"discontinue", "discontinued", "cancel", "cancelled", "canceled"}
)


@dataclass(frozen=True)
class AssignmentRow:
    cabinet_id: int
    department_id: int
    department_name: str
    cabinet_name: Optional[str]
    stock_id: Optional[int]


@dataclass(frozen=True)
class StockUnitRow:
    item_code: str
    item_name: Optional[str]
    cabinet_id: int
    stock_id: int
    is_stock: bool
    expire_date: Optional[date]


@dataclass(frozen=True)
class ThresholdOverride:
    stock_min: Optional[int]
    stock_max: Optional[int]


def list_cabinets(
    db: Session,
    cabinet_id: Optional[int] = None,
    cabinet_code: Optional[str] = None,
) -> list[Cabinet]:
    """Cabinets matching every given filter, ordered by id."""
    query = db.query(Cabinet)
    if cabinet_id is not None:
        query = query.filter(Cabinet.id == cabinet_id)
    if cabinet_code:
        query = query.filter(Cabinet.cabinet_code == cabinet_code)
    return query.order_by(Cabinet.id.asc()).all()


def resolve_cabinet_by_code(db: Session, code: str) -> Optional[int]:
    cabinet_id = (
        db.query(Cabinet.id)
        .filter(Cabinet.cabinet_code == code)
        .order_by(Cabinet.id.asc())
        .limit(1)
        .scalar()
    )
    return cabinet_id


def list_active_assignments(
    db: Session,
    cabinet_id: Optional[int] = None,
    department_id: Optional[int] = None,
) -> list[AssignmentRow]:
    """
    ACTIVE cabinet-department assignments, optionally narrowed to one
    cabinet and/or one department. Ordered by cabinet id, then department
    name, so callers can rely on a stable "first" row.
    """
    query = (
        db.query(
            CabinetDepartment.cabinet_id,
            CabinetDepartment.department_id,
            Department.name,
            Cabinet.cabinet_name,
            Cabinet.stock_id,
        )
        .join(Department, Department.id == CabinetDepartment.department_id)
        .join(Cabinet, Cabinet.id == CabinetDepartment.cabinet_id)
        .filter(CabinetDepartment.status == AssignmentStatus.ACTIVE)
    )
    if cabinet_id is not None:
        query = query.filter(CabinetDepartment.cabinet_id == cabinet_id)
    if department_id is not None:
        query = query.filter(CabinetDepartment.department_id == department_id)

    rows = query.order_by(CabinetDepartment.cabinet_id.asc(), Department.name.asc()).all()
    return [
        AssignmentRow(
            cabinet_id=r[0],
            department_id=r[1],
            department_name=r[2],
            cabinet_name=r[3],
            stock_id=r[4],
        )
        for r in rows
    ]


def list_stock_units(db: Session, cabinet_ids: Iterable[int]) -> list[StockUnitRow]:
    """
    Stock units held by the given cabinets (joined through the cabinet's
    stock location). Units whose item is missing from the catalog are
    skipped. Both in-cabinet and dispensed units are returned.
    """
    ids = sorted(set(cabinet_ids))
    if not ids:
        return []

    rows = (
        db.query(
            ItemStock.item_code,
            Item.itemname,
            Cabinet.id,
            ItemStock.stock_id,
            ItemStock.is_stock,
            ItemStock.expire_date,
        )
        .join(Item, Item.itemcode == ItemStock.item_code)
        .join(Cabinet, Cabinet.stock_id == ItemStock.stock_id)
        .filter(ItemStock.stock_id > 0)
        .filter(Cabinet.id.in_(ids))
        .order_by(Cabinet.id.asc(), ItemStock.item_code.asc(), ItemStock.row_id.asc())
        .all()
    )
    return [
        StockUnitRow(
            item_code=r[0],
            item_name=r[1],
            cabinet_id=r[2],
            stock_id=r[3],
            is_stock=bool(r[4]),
            expire_date=r[5],
        )
        for r in rows
    ]


def get_threshold_overrides(
    db: Session,
    cabinet_id: int,
    item_codes: Sequence[str],
) -> dict[str, ThresholdOverride]:
    if not item_codes:
        return {}

    settings = (
        db.query(CabinetItemSetting)
        .filter(
            CabinetItemSetting.cabinet_id == cabinet_id,
            CabinetItemSetting.item_code.in_(list(item_codes)),
        )
        .all()
    )
    return {
        s.item_code: ThresholdOverride(stock_min=s.stock_min, stock_max=s.stock_max)
        for s in settings
    }


def sum_usage_quantity(
    db: Session,
    item_codes: Sequence[str],
    day: date,
    department_ids: Optional[Iterable[int]] = None,
) -> dict[str, int]:
    """
    Outstanding dispensed quantity per item for lines created on ``day``.

    Outstanding = qty - qty_used_with_patient - qty_returned_to_cabinet.
    Cancelled-family statuses are excluded; NULL status counts. When
    ``department_ids`` is None no department restriction applies.
    Items whose total is not positive are omitted.
    """
    if not item_codes:
        return {}

    start, end = day_bounds(day)
    outstanding = func.sum(
        func.coalesce(SupplyUsageItem.qty, 0)
        - func.coalesce(SupplyUsageItem.qty_used_with_patient, 0)
        - func.coalesce(SupplyUsageItem.qty_returned_to_cabinet, 0)
    )

    query = (
        db.query(SupplyUsageItem.order_item_code, outstanding)
        .join(
            MedicalSupplyUsage,
            MedicalSupplyUsage.id == SupplyUsageItem.medical_supply_usage_id,
        )
        .filter(SupplyUsageItem.order_item_code.in_(list(item_codes)))
        .filter(SupplyUsageItem.order_item_code != "")
        .filter(SupplyUsageItem.created_at >= start, SupplyUsageItem.created_at < end)
        .filter(
            or_(
                SupplyUsageItem.order_item_status.is_(None),
                func.lower(SupplyUsageItem.order_item_status).not_in(
                    sorted(CANCELLED_USAGE_STATUSES)
                ),
            )
        )
    )
    if department_ids is not None:
        codes = [str(d) for d in department_ids]
        query = query.filter(MedicalSupplyUsage.department_code.in_(codes))

    totals: dict[str, int] = {}
    for item_code, qty in query.group_by(SupplyUsageItem.order_item_code).all():
        value = int(qty or 0)
        if value > 0:
            totals[item_code] = value
    return totals


def sum_returned_quantity_by_location(
    db: Session,
    item_codes: Sequence[str],
    day: date,
    stock_ids: Optional[Iterable[int]] = None,
    reasons: Optional[Iterable[str]] = None,
) -> dict[tuple[str, int], int]:
    """
    Returned quantity per (item code, stock location) on ``day``.

    ``stock_ids`` None means every location; ``reasons`` None or empty
    means every return reason.
    """
    if not item_codes:
        return {}

    start, end = day_bounds(day)
    query = (
        db.query(
            SupplyItemReturnRecord.item_code,
            SupplyItemReturnRecord.stock_id,
            func.sum(func.coalesce(SupplyItemReturnRecord.qty_returned, 0)),
        )
        .filter(SupplyItemReturnRecord.item_code.in_(list(item_codes)))
        .filter(SupplyItemReturnRecord.item_code != "")
        .filter(SupplyItemReturnRecord.stock_id.isnot(None))
        .filter(
            SupplyItemReturnRecord.return_datetime >= start,
            SupplyItemReturnRecord.return_datetime < end,
        )
    )
    if stock_ids is not None:
        query = query.filter(SupplyItemReturnRecord.stock_id.in_(list(stock_ids)))
    reason_list = list(reasons or [])
    if reason_list:
        query = query.filter(SupplyItemReturnRecord.return_reason.in_(reason_list))

    rows = query.group_by(
        SupplyItemReturnRecord.item_code, SupplyItemReturnRecord.stock_id
    ).all()
    return {(item_code, stock_id): int(total or 0) for item_code, stock_id, total in rows}


def get_department_name(db: Session, department_id: int) -> Optional[str]:
    def load() -> Optional[str]:
        return db.query(Department.name).filter(Department.id == department_id).scalar()

    return cached_reference("department", department_id, load)


def get_cabinet_name(db: Session, cabinet_id: int) -> Optional[str]:
    """Cabinet name, falling back to its code."""

    def load() -> Optional[str]:
        cabinet = db.query(Cabinet).filter(Cabinet.id == cabinet_id).first()
        if not cabinet:
            return None
        return cabinet.cabinet_name or cabinet.cabinet_code

    return cached_reference("cabinet", cabinet_id, load)
