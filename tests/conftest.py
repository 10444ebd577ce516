"""
Pytest fixtures for the cabinet stock report tests.

Provides:
- An in-memory SQLite database with every supply table created
- StockWorld, a small builder for items, cabinets, assignments, stock
  units, usage lines and return records

The report date is fixed (AS_OF) so "today" filters are deterministic.
"""

import os

# Settings are read at import time by medsupply.core.database.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["REDIS_URL"] = ""

from datetime import date, datetime, time, timedelta
from typing import Generator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from medsupply.models.base import Base
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
    ReturnReason,
    SupplyItemReturnRecord,
    SupplyUsageItem,
)

AS_OF = date(2026, 10, 19)
YESTERDAY = AS_OF - timedelta(days=1)

# Default for StockWorld.cabinet: stock location 100 + cabinet id.
AUTO = object()


def at(day: date, hour: int = 9) -> datetime:
    return datetime.combine(day, time(hour, 30))


class StockWorld:
    """Builds supply-table fixtures with explicit ids where order matters."""

    def __init__(self, session: Session):
        self.session = session

    def _save(self, obj):
        self.session.add(obj)
        self.session.flush()
        return obj

    def item(self, code: str, name: Optional[str] = None) -> Item:
        return self._save(Item(itemcode=code, itemname=name or f"Item {code}"))

    def department(self, name: str, id: Optional[int] = None) -> Department:
        return self._save(Department(id=id, name=name))

    def cabinet(
        self,
        id: int,
        code: Optional[str] = None,
        name: Optional[str] = None,
        stock_id=AUTO,
    ) -> Cabinet:
        return self._save(
            Cabinet(
                id=id,
                cabinet_code=code or f"CAB-{id:03d}",
                cabinet_name=name,
                stock_id=100 + id if stock_id is AUTO else stock_id,
            )
        )

    def assign(
        self,
        cabinet: Cabinet,
        department: Department,
        status: AssignmentStatus = AssignmentStatus.ACTIVE,
    ) -> CabinetDepartment:
        return self._save(
            CabinetDepartment(
                cabinet_id=cabinet.id,
                department_id=department.id,
                status=status,
            )
        )

    def units(
        self,
        cabinet: Cabinet,
        item_code: str,
        count: int,
        in_cabinet: bool = True,
        expire_date: Optional[date] = None,
    ) -> None:
        for _ in range(count):
            self.session.add(
                ItemStock(
                    item_code=item_code,
                    stock_id=cabinet.stock_id,
                    is_stock=in_cabinet,
                    expire_date=expire_date,
                )
            )
        self.session.flush()

    def threshold(
        self,
        cabinet: Cabinet,
        item_code: str,
        stock_min: Optional[int] = None,
        stock_max: Optional[int] = None,
    ) -> CabinetItemSetting:
        return self._save(
            CabinetItemSetting(
                cabinet_id=cabinet.id,
                item_code=item_code,
                stock_min=stock_min,
                stock_max=stock_max,
            )
        )

    def usage(
        self,
        department: Optional[Department],
        item_code: str,
        qty: int,
        status: Optional[str] = "Verified",
        created_at: Optional[datetime] = None,
        used_with_patient: Optional[int] = None,
        returned_to_cabinet: Optional[int] = None,
    ) -> SupplyUsageItem:
        created_at = created_at or at(AS_OF)
        episode = self._save(
            MedicalSupplyUsage(
                patient_hn="HN0001",
                department_code=str(department.id) if department else None,
                created_at=created_at,
            )
        )
        return self._save(
            SupplyUsageItem(
                medical_supply_usage_id=episode.id,
                order_item_code=item_code,
                order_item_status=status,
                qty=qty,
                qty_used_with_patient=used_with_patient,
                qty_returned_to_cabinet=returned_to_cabinet,
                created_at=created_at,
            )
        )

    def returned(
        self,
        cabinet: Cabinet,
        item_code: str,
        qty: int,
        reason: ReturnReason = ReturnReason.DAMAGED,
        when: Optional[datetime] = None,
    ) -> SupplyItemReturnRecord:
        return self._save(
            SupplyItemReturnRecord(
                item_code=item_code,
                stock_id=cabinet.stock_id,
                qty_returned=qty,
                return_reason=reason,
                return_datetime=when or at(AS_OF, 14),
            )
        )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def world(session) -> StockWorld:
    return StockWorld(session)
