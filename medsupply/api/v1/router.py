# medsupply/api/v1/router.py
from fastapi import APIRouter

from medsupply.api.v1.endpoints import reports

api_router = APIRouter()

api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
