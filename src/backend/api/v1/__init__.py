"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.payments import router as payments_router
from api.v1.ussd import router as ussd_router

router = APIRouter()

router.include_router(ussd_router, prefix="/ussd", tags=["USSD"])
router.include_router(payments_router, prefix="/payments", tags=["Payments"])
