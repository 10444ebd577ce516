# medsupply/models/department.py
from sqlalchemy import Column, Integer, String

from medsupply.models.base import Base


class Department(Base):
    """
    Hospital department (ward, OR, ICU, ...) that cabinets are assigned to.
    """

    __tablename__ = "department"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
