# medsupply/services/cabinet_stock_service.py
"""
Cabinet stock report: reconciles on-hand balance, today's in-use and
returned quantities and the per-cabinet min/max levels into one refill
quantity per (department, item).

Pipeline (each step only reads what the previous ones produced):

1. resolve_scope         - cabinet / department / unscoped + concrete cabinet
2. collect_balances      - in-cabinet unit counts per (department label, item)
3. resolve_thresholds    - min/max from the concrete cabinet's settings only
4. resolve_in_use        - today's outstanding usage per item
   resolve_damaged       - today's returns per item, first cabinet wins
5. calculate_refill      - min(max - balance, in_use + damaged), unclamped
6. rank_rows             - expiry / low stock priority, then item code
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medsupply.core.config import get_settings
from medsupply.schemas.cabinet_stock import (
    CabinetStockFilters,
    CabinetStockReport,
    CabinetStockRow,
    CabinetStockSummary,
)
from medsupply.services import cabinet_stock_queries as queries
from medsupply.services.cabinet_stock_queries import AssignmentRow, StockUnitRow
from medsupply.utils.datetime_utils import local_today

logger = logging.getLogger(__name__)

NO_DEPARTMENT = "-"


class CabinetStockReportError(Exception):
    """Raised when the data behind the report could not be fetched."""


class ScopeMode(str, enum.Enum):
    CABINET = "CABINET"
    DEPARTMENT = "DEPARTMENT"
    UNSCOPED = "UNSCOPED"


@dataclass(frozen=True)
class StockScope:
    mode: ScopeMode
    cabinet_id: Optional[int] = None
    cabinet_code: Optional[str] = None
    department_id: Optional[int] = None
    # Cabinet the id/code filter points at; None when neither resolves.
    concrete_cabinet_id: Optional[int] = None

    @property
    def has_cabinet_filter(self) -> bool:
        return self.cabinet_id is not None or bool(self.cabinet_code)


@dataclass
class BalanceRow:
    department_name: str
    item_code: str
    item_name: Optional[str]
    balance: int = 0
    earliest_expiry: Optional[date] = None
    has_expired: bool = False
    has_near_expiry: bool = False


@dataclass(frozen=True)
class Threshold:
    stock_min: Optional[int] = None
    stock_max: int = 0


@dataclass
class DamageLookup:
    """
    Damaged quantities keyed by item code (cabinet / department scope) or by
    (item code, department label) (unscoped).
    """

    mode: ScopeMode
    quantities: dict[Hashable, int] = field(default_factory=dict)

    def get(self, item_code: str, department_name: str) -> int:
        if self.mode == ScopeMode.UNSCOPED:
            return self.quantities.get((item_code, department_name), 0)
        return self.quantities.get(item_code, 0)


@dataclass
class ReconciledRow:
    balance: BalanceRow
    threshold: Threshold
    qty_in_use: int
    damaged_qty: int
    refill_qty: int

    @property
    def is_below_min(self) -> bool:
        stock_min = self.threshold.stock_min
        return stock_min is not None and stock_min > 0 and self.balance.balance < stock_min


# ---------------------------------------------------------------------------
# 1. Scope
# ---------------------------------------------------------------------------


def resolve_scope(
    db: Session,
    cabinet_id: Optional[int] = None,
    cabinet_code: Optional[str] = None,
    department_id: Optional[int] = None,
) -> StockScope:
    """
    Department wins over cabinet when both are given. The concrete cabinet
    is resolved in every mode; an unknown code simply leaves it None.
    """
    cabinet_code = (cabinet_code or "").strip() or None

    concrete_cabinet_id = cabinet_id
    if concrete_cabinet_id is None and cabinet_code:
        concrete_cabinet_id = queries.resolve_cabinet_by_code(db, cabinet_code)
        if concrete_cabinet_id is None:
            logger.info("Cabinet code %s not found; no threshold cabinet", cabinet_code)

    if department_id is not None:
        mode = ScopeMode.DEPARTMENT
    elif cabinet_id is not None or cabinet_code:
        mode = ScopeMode.CABINET
    else:
        mode = ScopeMode.UNSCOPED

    return StockScope(
        mode=mode,
        cabinet_id=cabinet_id,
        cabinet_code=cabinet_code,
        department_id=department_id,
        concrete_cabinet_id=concrete_cabinet_id,
    )


def first_department_by_cabinet(assignments: Iterable[AssignmentRow]) -> dict[int, str]:
    """Lexicographically first ACTIVE department name per cabinet."""
    labels: dict[int, str] = {}
    for a in assignments:
        current = labels.get(a.cabinet_id)
        if current is None or a.department_name < current:
            labels[a.cabinet_id] = a.department_name
    return labels


# ---------------------------------------------------------------------------
# 2. Balance
# ---------------------------------------------------------------------------


def cabinet_labels_for_scope(db: Session, scope: StockScope) -> dict[int, str]:
    """
    Cabinets whose units count under the scope, mapped to the department
    label their rows are reported under.
    """
    if scope.mode == ScopeMode.DEPARTMENT:
        assignments = queries.list_active_assignments(db, department_id=scope.department_id)
        labels = {a.cabinet_id: a.department_name for a in assignments}
        if scope.has_cabinet_filter:
            allowed = {
                c.id for c in queries.list_cabinets(db, scope.cabinet_id, scope.cabinet_code)
            }
            labels = {cid: name for cid, name in labels.items() if cid in allowed}
        return labels

    if scope.mode == ScopeMode.CABINET:
        cabinets = queries.list_cabinets(db, scope.cabinet_id, scope.cabinet_code)
        labels = {c.id: NO_DEPARTMENT for c in cabinets}
        for cabinet_id in labels:
            first = first_department_by_cabinet(
                queries.list_active_assignments(db, cabinet_id=cabinet_id)
            )
            labels[cabinet_id] = first.get(cabinet_id, NO_DEPARTMENT)
        return labels

    # Cabinets without an ACTIVE assignment are not reported unscoped.
    return first_department_by_cabinet(queries.list_active_assignments(db))


def aggregate_balances(
    units: Iterable[StockUnitRow],
    cabinet_labels: dict[int, str],
    as_of: date,
    near_expiry_days: int = 7,
) -> list[BalanceRow]:
    """
    Group units by (department label, item code), ordered by label then
    item code. Every item with a qualifying unit gets a row, even when no
    unit is currently in the cabinet.
    """
    near_limit = as_of + timedelta(days=near_expiry_days)
    rows: dict[tuple[str, str], BalanceRow] = {}

    for unit in units:
        label = cabinet_labels.get(unit.cabinet_id)
        if label is None:
            continue
        key = (label, unit.item_code)
        row = rows.get(key)
        if row is None:
            row = rows[key] = BalanceRow(
                department_name=label,
                item_code=unit.item_code,
                item_name=unit.item_name,
            )
        if unit.is_stock:
            row.balance += 1

        exp = unit.expire_date
        if exp is None:
            continue
        if row.earliest_expiry is None or exp < row.earliest_expiry:
            row.earliest_expiry = exp
        if exp < as_of:
            row.has_expired = True
        elif exp <= near_limit:
            row.has_near_expiry = True

    return [rows[key] for key in sorted(rows)]


def collect_balances(
    db: Session,
    scope: StockScope,
    as_of: date,
    near_expiry_days: int = 7,
) -> list[BalanceRow]:
    labels = cabinet_labels_for_scope(db, scope)
    units = queries.list_stock_units(db, labels.keys())
    return aggregate_balances(units, labels, as_of, near_expiry_days)


# ---------------------------------------------------------------------------
# 3. Thresholds
# ---------------------------------------------------------------------------


def resolve_thresholds(
    db: Session,
    concrete_cabinet_id: Optional[int],
    item_codes: Sequence[str],
) -> dict[str, Threshold]:
    """
    Min/max come only from the concrete cabinet's item settings. Items
    without a setting (or any item when no cabinet is known) are absent and
    read as Threshold() - min None, max 0.
    """
    if concrete_cabinet_id is None:
        return {}

    overrides = queries.get_threshold_overrides(db, concrete_cabinet_id, item_codes)
    return {
        code: Threshold(
            stock_min=o.stock_min,
            stock_max=o.stock_max if o.stock_max is not None else 0,
        )
        for code, o in overrides.items()
    }


# ---------------------------------------------------------------------------
# 4. In-use and damaged
# ---------------------------------------------------------------------------


def usage_department_ids(db: Session, scope: StockScope) -> Optional[list[int]]:
    """
    Departments whose usage counts. None means no restriction: unscoped,
    or a cabinet scope whose cabinet is unknown or has no ACTIVE assignment.
    """
    if scope.mode == ScopeMode.DEPARTMENT:
        return [scope.department_id]

    if scope.mode == ScopeMode.CABINET and scope.concrete_cabinet_id is not None:
        assignments = queries.list_active_assignments(db, cabinet_id=scope.concrete_cabinet_id)
        department_ids = sorted({a.department_id for a in assignments})
        return department_ids or None

    return None


def resolve_in_use(
    db: Session,
    scope: StockScope,
    item_codes: Sequence[str],
    as_of: date,
) -> dict[str, int]:
    if not item_codes:
        return {}
    return queries.sum_usage_quantity(
        db,
        item_codes,
        as_of,
        department_ids=usage_department_ids(db, scope),
    )


def first_wins(entries: Iterable[tuple[Hashable, int]]) -> dict:
    """
    Keep the first positive quantity seen per key. Callers pass entries
    already sorted by cabinet id so "first" is reproducible.
    """
    result: dict = {}
    for key, qty in entries:
        if qty > 0 and key not in result:
            result[key] = qty
    return result


def _scope_stock_id(db: Session, scope: StockScope) -> Optional[int]:
    if scope.cabinet_id is not None:
        cabinets = queries.list_cabinets(db, cabinet_id=scope.cabinet_id)
    else:
        cabinets = queries.list_cabinets(db, cabinet_code=scope.cabinet_code)
    for cabinet in cabinets:
        if cabinet.stock_id is not None:
            return cabinet.stock_id
    return None


def resolve_damaged(
    db: Session,
    scope: StockScope,
    item_codes: Sequence[str],
    as_of: date,
    reasons: Optional[Iterable[str]] = None,
) -> DamageLookup:
    """
    Returned quantity per item under the scope.

    A cabinet filter (in cabinet or department mode) reads that cabinet's
    location only. Otherwise a cabinet shared by several departments must
    not be counted more than once: its returns go to its first ACTIVE
    department, and department and unscoped modes take the first cabinet
    (lowest id) per key instead of summing across cabinets.
    """
    lookup = DamageLookup(mode=scope.mode)
    if not item_codes:
        return lookup
    reasons = list(reasons or [])

    if scope.mode == ScopeMode.CABINET or (
        scope.mode == ScopeMode.DEPARTMENT and scope.has_cabinet_filter
    ):
        stock_id = _scope_stock_id(db, scope)
        if stock_id is None:
            return lookup
        totals = queries.sum_returned_quantity_by_location(
            db, item_codes, as_of, stock_ids=[stock_id], reasons=reasons
        )
        lookup.quantities = {code: qty for (code, _), qty in totals.items() if qty > 0}
        return lookup

    if scope.mode == ScopeMode.DEPARTMENT:
        first_department = first_department_by_cabinet(queries.list_active_assignments(db))
        assignments = queries.list_active_assignments(db, department_id=scope.department_id)
        cabinets = sorted(
            {
                (a.cabinet_id, a.stock_id)
                for a in assignments
                if a.stock_id is not None
                and first_department.get(a.cabinet_id) == a.department_name
            }
        )
        if not cabinets:
            return lookup
        totals = queries.sum_returned_quantity_by_location(
            db,
            item_codes,
            as_of,
            stock_ids=[stock_id for _, stock_id in cabinets],
            reasons=reasons,
        )
        lookup.quantities = first_wins(
            (code, totals.get((code, stock_id), 0))
            for _, stock_id in cabinets
            for code in sorted(item_codes)
        )
        return lookup

    totals = queries.sum_returned_quantity_by_location(db, item_codes, as_of, reasons=reasons)
    if not totals:
        return lookup

    cabinet_by_stock: dict[int, int] = {}
    for cabinet in queries.list_cabinets(db):
        if cabinet.stock_id is not None:
            cabinet_by_stock.setdefault(cabinet.stock_id, cabinet.id)
    department_by_cabinet = first_department_by_cabinet(queries.list_active_assignments(db))

    def order(entry: tuple[tuple[str, int], int]) -> tuple:
        (code, stock_id), _ = entry
        cabinet_id = cabinet_by_stock.get(stock_id)
        # Locations with no cabinet go last, by stock id.
        return (cabinet_id is None, cabinet_id or 0, stock_id, code)

    entries = []
    for (code, stock_id), qty in sorted(totals.items(), key=order):
        cabinet_id = cabinet_by_stock.get(stock_id)
        label = department_by_cabinet.get(cabinet_id, NO_DEPARTMENT)
        entries.append(((code, label), qty))
    lookup.quantities = first_wins(entries)
    return lookup


# ---------------------------------------------------------------------------
# 5. Refill
# ---------------------------------------------------------------------------


def calculate_refill(stock_max: int, balance: int, qty_in_use: int, damaged_qty: int) -> int:
    """
    X = max - balance (room left), Y = in_use + damaged (taken out today).
    Refill Y, or X when X is smaller. Not clamped: a balance above max gives
    a negative refill.
    """
    x = stock_max - balance
    y = qty_in_use + damaged_qty
    refill = y
    if x < y:
        refill = x
    return refill


# ---------------------------------------------------------------------------
# 6. Ranking
# ---------------------------------------------------------------------------


def _rank_key(row: ReconciledRow) -> tuple:
    b = row.balance
    return (
        not b.has_expired,
        not b.has_near_expiry,
        not row.is_below_min,
        b.earliest_expiry is None,
        b.earliest_expiry or date.max,
        b.item_code,
    )


def rank_rows(rows: Iterable[ReconciledRow]) -> list[CabinetStockRow]:
    """
    Expired first, then expiring soon, then below min, then earliest
    expiry (rows without expiry last), then item code. seq is 1..N.
    """
    ranked = sorted(rows, key=_rank_key)
    return [
        CabinetStockRow(
            seq=i,
            department_name=r.balance.department_name,
            item_code=r.balance.item_code,
            item_name=r.balance.item_name,
            balance_qty=r.balance.balance,
            qty_in_use=r.qty_in_use,
            damaged_qty=r.damaged_qty,
            stock_max=r.threshold.stock_max,
            stock_min=r.threshold.stock_min,
            refill_qty=r.refill_qty,
        )
        for i, r in enumerate(ranked, start=1)
    ]


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def reconcile(
    balances: Sequence[BalanceRow],
    thresholds: dict[str, Threshold],
    in_use: dict[str, int],
    damaged: DamageLookup,
) -> list[ReconciledRow]:
    rows: list[ReconciledRow] = []
    for b in balances:
        threshold = thresholds.get(b.item_code, Threshold())
        qty_in_use = in_use.get(b.item_code, 0)
        damaged_qty = damaged.get(b.item_code, b.department_name)
        rows.append(
            ReconciledRow(
                balance=b,
                threshold=threshold,
                qty_in_use=qty_in_use,
                damaged_qty=damaged_qty,
                refill_qty=calculate_refill(
                    threshold.stock_max, b.balance, qty_in_use, damaged_qty
                ),
            )
        )
    return rows


def _resolve_filter_names(db: Session, scope: StockScope) -> CabinetStockFilters:
    department_name = None
    if scope.department_id is not None:
        department_name = queries.get_department_name(db, scope.department_id)

    cabinet_name = None
    if scope.cabinet_id is not None:
        cabinet_name = queries.get_cabinet_name(db, scope.cabinet_id)
    elif scope.cabinet_code:
        if scope.concrete_cabinet_id is not None:
            cabinet_name = queries.get_cabinet_name(db, scope.concrete_cabinet_id)
        cabinet_name = cabinet_name or scope.cabinet_code

    return CabinetStockFilters(
        cabinetId=scope.cabinet_id,
        cabinetCode=scope.cabinet_code,
        cabinetName=cabinet_name,
        departmentId=scope.department_id,
        departmentName=department_name,
    )


def compute_cabinet_stock_report(
    db: Session,
    *,
    cabinet_id: Optional[int] = None,
    cabinet_code: Optional[str] = None,
    department_id: Optional[int] = None,
    as_of: Optional[date] = None,
) -> CabinetStockReport:
    """
    Build the cabinet stock report for the given filters.

    Read-only; nothing is cached or persisted. Any database failure is
    raised as CabinetStockReportError with the original error chained,
    since partial figures are worse than none.
    """
    settings = get_settings()
    as_of = as_of or local_today(settings.report_timezone)

    try:
        scope = resolve_scope(db, cabinet_id, cabinet_code, department_id)
        balances = collect_balances(db, scope, as_of, settings.near_expiry_days)
        item_codes = sorted({b.item_code for b in balances})

        thresholds = resolve_thresholds(db, scope.concrete_cabinet_id, item_codes)
        in_use = resolve_in_use(db, scope, item_codes, as_of)
        damaged = resolve_damaged(
            db, scope, item_codes, as_of, reasons=settings.damaged_return_reasons
        )

        rows = reconcile(balances, thresholds, in_use, damaged)
        filters = _resolve_filter_names(db, scope)
    except SQLAlchemyError as exc:
        logger.exception(
            "Cabinet stock report query failed cabinet_id=%s cabinet_code=%s department_id=%s",
            cabinet_id,
            cabinet_code,
            department_id,
        )
        raise CabinetStockReportError(f"Failed to get cabinet stock report data: {exc}") from exc

    data = rank_rows(rows)
    summary = CabinetStockSummary(
        total_rows=len(data),
        total_qty=sum(r.balance_qty for r in data),
        total_refill_qty=sum(r.refill_qty for r in data),
    )

    logger.info(
        "Cabinet stock report mode=%s as_of=%s rows=%s refill=%s",
        scope.mode.value,
        as_of,
        summary.total_rows,
        summary.total_refill_qty,
    )
    return CabinetStockReport(
        report_date=as_of,
        filters=filters,
        summary=summary,
        data=data,
    )
