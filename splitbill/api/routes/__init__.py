"""
API Routes
"""
from fastapi import APIRouter

from splitbill.api.routes.ussd import router as ussd_router
from splitbill.api.routes.bills import router as bills_router
from splitbill.api.routes.payments import router as payments_router
from splitbill.api.routes.sms import router as sms_router

router = APIRouter()

router.include_router(ussd_router, prefix="/ussd", tags=["USSD"])
router.include_router(bills_router, prefix="/bills", tags=["Bills"])
router.include_router(payments_router, prefix="/payments", tags=["Payments"])
router.include_router(sms_router, prefix="/sms", tags=["SMS"])
