"""
Bill Service - Bill persistence and payment tracking on SQLAlchemy
"""
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from splitbill.core.exceptions import BillCreationError, ErrorCode, ValidationException
from splitbill.core.logging import get_logger, log_async_operation
from splitbill.core.validation import MAX_AMOUNT, AmountValidator, PhoneNumberValidator
from splitbill.db.database import utcnow
from splitbill.db.models.bill import Bill, BillMember, MemberStatus
from splitbill.db.models.user import User
from splitbill.domain.services.base_bill_store import BaseBillStore
from splitbill.domain.services.notification_service import NotificationService

logger = get_logger(__name__)


class BillService(BaseBillStore):
    """Service for creating bills and recording member payments"""

    def __init__(self, db: AsyncSession, notifier: NotificationService):
        self.db = db
        self.notifier = notifier

    @log_async_operation("create_bill")
    async def create_bill(
        self,
        creator_phone: str,
        creator_name: str,
        amount: Decimal,
        member_phones: List[str],
        description: Optional[str] = None,
    ) -> Bill:
        """
        Create the bill and its members in one transaction.
        Members are notified after commit; SMS failures do not undo the bill.
        """
        if amount is None or not AmountValidator.is_storable(Decimal(amount)):
            raise ValidationException(
                f"Amount must be between 0.01 and {MAX_AMOUNT}",
                field="amount",
                error_code=ErrorCode.INVALID_AMOUNT,
            )
        if not member_phones:
            raise ValidationException(
                "At least one member phone number is required",
                field="member_phones",
            )

        total = AmountValidator.quantize(Decimal(amount))
        share = AmountValidator.split(total, len(member_phones))

        try:
            result = await self.db.execute(select(User).where(User.phone == creator_phone))
            creator = result.scalar_one_or_none()
            if creator is None:
                creator = User(name=creator_name, phone=creator_phone)
                self.db.add(creator)

            bill = Bill(creator=creator, amount=total, description=description)
            bill.members = [
                BillMember(member_phone=phone, amount=share, status=MemberStatus.PENDING)
                for phone in member_phones
            ]
            self.db.add(bill)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Bill persistence failed",
                extra_data={
                    "creator_phone": PhoneNumberValidator.mask(creator_phone),
                    "members": len(member_phones),
                    "error": str(e),
                },
            )
            raise BillCreationError(
                "Failed to create bill",
                details={"members": len(member_phones)},
            ) from e

        logger.info(
            "Bill created",
            extra_data={
                "bill_id": bill.id,
                "creator_phone": PhoneNumberValidator.mask(creator_phone),
                "members": len(bill.members),
            }
        )

        await self.notifier.notify_bill_created(
            creator_name,
            [(member.member_phone, member.amount) for member in bill.members],
        )
        return bill

    @log_async_operation("mark_paid")
    async def mark_paid(self, bill_id: int, member_phone: str) -> bool:
        """
        Conditionally flip one pending member to paid.

        A number listed twice holds two shares; each payment settles the
        earliest pending one. The WHERE status = pending clause makes a
        payment racing another for the same share a no-op.
        """
        phone = PhoneNumberValidator.normalize(member_phone) or member_phone

        member_id = await self.db.scalar(
            select(BillMember.id)
            .where(
                BillMember.bill_id == bill_id,
                BillMember.member_phone == phone,
                BillMember.status == MemberStatus.PENDING,
            )
            .order_by(BillMember.id)
            .limit(1)
        )
        rowcount = 0
        if member_id is not None:
            result = await self.db.execute(
                update(BillMember)
                .where(
                    BillMember.id == member_id,
                    BillMember.status == MemberStatus.PENDING,
                )
                .values(status=MemberStatus.PAID, paid_at=utcnow())
            )
            rowcount = result.rowcount
        if rowcount == 0:
            await self.db.rollback()
            logger.info(
                "Payment not applied",
                extra_data={"bill_id": bill_id, "phone": PhoneNumberValidator.mask(phone)}
            )
            return False
        await self.db.commit()

        # Objects cached in this session still show the member as pending
        self.db.expire_all()
        bill = await self.get_bill(bill_id)

        payer = next(m for m in bill.members if m.id == member_id)
        paid_count = bill.paid_count
        total_count = len(bill.members)

        logger.info(
            "Payment recorded",
            extra_data={
                "bill_id": bill_id,
                "phone": PhoneNumberValidator.mask(phone),
                "paid": paid_count,
                "total": total_count,
            }
        )

        await self.notifier.notify_payment(
            payer_phone=phone,
            payer_share=payer.amount,
            other_member_phones=[m.member_phone for m in bill.members if m.id != member_id],
            creator_phone=bill.creator.phone if bill.creator else None,
            bill_amount=bill.amount,
            paid_count=paid_count,
            total_count=total_count,
        )
        return True

    async def get_bill(self, bill_id: int) -> Optional[Bill]:
        """Get bill by ID"""
        result = await self.db.execute(select(Bill).where(Bill.id == bill_id))
        return result.scalar_one_or_none()

    async def get_bills_by_creator(self, creator_phone: str) -> List[Bill]:
        """Get all bills created by a phone number"""
        result = await self.db.execute(
            select(Bill)
            .join(User, Bill.creator_id == User.id)
            .where(User.phone == creator_phone)
            .order_by(Bill.created_at.desc(), Bill.id.desc())
        )
        return list(result.scalars().all())

    async def get_bills_by_member(self, member_phone: str) -> List[Bill]:
        """Get all bills a phone number is a member of"""
        result = await self.db.execute(
            select(Bill)
            .where(
                Bill.id.in_(
                    select(BillMember.bill_id).where(BillMember.member_phone == member_phone)
                )
            )
            .order_by(Bill.created_at.desc(), Bill.id.desc())
        )
        return list(result.scalars().all())
