"""
Database Models
"""
from splitbill.db.models.user import User
from splitbill.db.models.bill import Bill, BillMember, MemberStatus

__all__ = [
    "User",
    "Bill",
    "BillMember",
    "MemberStatus",
]
