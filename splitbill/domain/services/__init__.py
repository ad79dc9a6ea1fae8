"""
Domain Services
"""
from splitbill.domain.services.base_bill_store import BaseBillStore
from splitbill.domain.services.bill_service import BillService
from splitbill.domain.services.notification_service import NotificationService

__all__ = [
    "BaseBillStore",
    "BillService",
    "NotificationService",
]
