# medsupply/models/cabinet.py
import enum

from sqlalchemy import Enum, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from medsupply.models.base import Base


class AssignmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Cabinet(Base):
    """
    A supply cabinet. Its stock units and return records are tagged with
    the cabinet's stock location id rather than the cabinet id.
    """

    __tablename__ = "cabinets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cabinet_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cabinet_code: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    stock_id: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        doc="Backing stock location; NULL for a cabinet not yet linked to stock.",
    )


class CabinetDepartment(Base):
    """
    Cabinet-to-department assignment. Many-to-many: a cabinet may serve
    several departments and a department may use several cabinets.
    Only ACTIVE rows are honored by the stock report.
    """

    __tablename__ = "cabinet_departments"
    __table_args__ = (
        UniqueConstraint("cabinet_id", "department_id", name="uq_cabinet_department"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cabinet_id: Mapped[int] = mapped_column(
        ForeignKey("cabinets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    department_id: Mapped[int] = mapped_column(
        ForeignKey("department.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[AssignmentStatus] = mapped_column(
        Enum(AssignmentStatus, name="cabinet_department_status_enum", native_enum=False),
        nullable=False,
        default=AssignmentStatus.ACTIVE,
    )


class CabinetItemSetting(Base):
    """
    Per-cabinet min/max stock levels for an item.
    """

    __tablename__ = "cabinet_item_settings"
    __table_args__ = (
        UniqueConstraint("cabinet_id", "item_code", name="uq_cabinet_item_setting"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cabinet_id: Mapped[int] = mapped_column(
        ForeignKey("cabinets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_code: Mapped[str] = mapped_column(String(25), nullable=False)
    stock_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    stock_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
