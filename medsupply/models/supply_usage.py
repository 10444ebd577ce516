# medsupply/models/supply_usage.py
import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medsupply.models.base import Base


class ReturnReason(str, enum.Enum):
    UNWRAPPED_UNUSED = "UNWRAPPED_UNUSED"
    EXPIRED = "EXPIRED"
    CONTAMINATED = "CONTAMINATED"
    DAMAGED = "DAMAGED"


class MedicalSupplyUsage(Base):
    """
    One patient visit's supply usage episode, recorded against a department.

    ``department_code`` holds the department id as text, as sent by the HIS.
    """

    __tablename__ = "medical_supply_usages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_hn: Mapped[str | None] = mapped_column(String(50), nullable=True)
    en: Mapped[str | None] = mapped_column(String(50), nullable=True)
    department_code: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    items: Mapped[list["SupplyUsageItem"]] = relationship(
        back_populates="usage",
        cascade="all, delete-orphan",
    )


class SupplyUsageItem(Base):
    """
    A dispensed item line within a usage episode.
    """

    __tablename__ = "supply_usage_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    medical_supply_usage_id: Mapped[int] = mapped_column(
        ForeignKey("medical_supply_usages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_item_code: Mapped[str | None] = mapped_column(String(25), nullable=True, index=True)
    order_item_status: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
        doc="HIS order status, e.g. Verified, Discontinue.",
    )
    qty: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qty_used_with_patient: Mapped[int | None] = mapped_column(Integer, nullable=True)
    qty_returned_to_cabinet: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    usage: Mapped[MedicalSupplyUsage] = relationship(back_populates="items")


class SupplyItemReturnRecord(Base):
    """
    Items returned from a cabinet, tagged with the cabinet's stock location.
    """

    __tablename__ = "supply_item_return_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_code: Mapped[str | None] = mapped_column(String(25), nullable=True, index=True)
    stock_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    qty_returned: Mapped[int | None] = mapped_column(Integer, nullable=True)
    return_reason: Mapped[ReturnReason | None] = mapped_column(
        Enum(ReturnReason, name="return_reason_enum", native_enum=False),
        nullable=True,
    )
    return_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    return_note: Mapped[str | None] = mapped_column(String(255), nullable=True)
