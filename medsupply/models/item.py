# medsupply/models/item.py
from datetime import date

from sqlalchemy import Boolean, Date, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from medsupply.models.base import Base


class Item(Base):
    """
    Catalog entry for a medical supply item, keyed by its item code.
    """

    __tablename__ = "item"

    itemcode: Mapped[str] = mapped_column(String(25), primary_key=True)
    itemname: Mapped[str | None] = mapped_column(String(255), nullable=True)


class ItemStock(Base):
    """
    One physical unit of an item.

    A unit belongs to a cabinet through the cabinet's stock location
    (``stock_id``); ``stock_id`` of 0 or NULL means unassigned.
    ``is_stock`` is true while the unit is physically in the cabinet.
    """

    __tablename__ = "itemstock"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_code: Mapped[str] = mapped_column(String(25), nullable=False, index=True)
    stock_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_stock: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )
    expire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rfid_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
