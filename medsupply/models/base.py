# medsupply/models/base.py
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    The tables are owned by the supply services (item, cabinet, usage and
    return services); this package maps them for reading only.
    """

    pass
