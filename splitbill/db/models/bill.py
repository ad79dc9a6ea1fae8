"""
Bill Model - Shared bills and their members
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Numeric, ForeignKey, Text
from sqlalchemy.orm import relationship

from splitbill.db.database import Base, utcnow


class MemberStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class Bill(Base):
    """A total amount split evenly between member phone numbers"""

    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    creator = relationship("User", lazy="selectin")
    members = relationship(
        "BillMember",
        back_populates="bill",
        lazy="selectin",
        order_by="BillMember.id",
        cascade="all, delete-orphan",
    )

    @property
    def paid_count(self) -> int:
        return sum(1 for m in self.members if m.status == MemberStatus.PAID)

    @property
    def is_settled(self) -> bool:
        return bool(self.members) and self.paid_count == len(self.members)


class BillMember(Base):
    """One participant's share of a bill"""

    __tablename__ = "bill_members"

    id = Column(Integer, primary_key=True, index=True)
    bill_id = Column(Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True)
    member_phone = Column(String(20), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(
        SQLEnum(
            MemberStatus,
            name="member_status",
            values_callable=lambda x: [e.value for e in x]
        ),
        default=MemberStatus.PENDING,
        nullable=False,
    )
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    bill = relationship("Bill", back_populates="members")
