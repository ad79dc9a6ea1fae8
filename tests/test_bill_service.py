"""
Tests for BillService and NotificationService
"""
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from splitbill.core.exceptions import BillCreationError, ValidationException
from splitbill.db.models.bill import MemberStatus
from splitbill.domain.services.notification_service import NotificationService

CREATOR = "+255700000001"
MEMBER_A = "+255712345678"
MEMBER_B = "+255698765432"


class TestCreateBill:
    """Bill creation"""

    @pytest.mark.integration
    async def test_creates_bill_with_even_shares(self, bill_service):
        bill = await bill_service.create_bill(
            creator_phone=CREATOR,
            creator_name="Asha",
            amount=Decimal("50000"),
            member_phones=[MEMBER_A, MEMBER_B],
            description="Dinner",
        )

        assert bill.id is not None
        assert bill.amount == Decimal("50000.00")
        assert bill.description == "Dinner"
        assert bill.creator.phone == CREATOR
        assert bill.creator.name == "Asha"
        assert [m.member_phone for m in bill.members] == [MEMBER_A, MEMBER_B]
        assert all(m.amount == Decimal("25000.00") for m in bill.members)
        assert all(m.status == MemberStatus.PENDING for m in bill.members)
        assert bill.paid_count == 0
        assert not bill.is_settled

    @pytest.mark.integration
    async def test_amount_is_rounded_to_cents(self, bill_service):
        bill = await bill_service.create_bill(
            creator_phone=CREATOR,
            creator_name="Asha",
            amount=Decimal("100.005"),
            member_phones=[MEMBER_A, MEMBER_B, "+255755555555"],
        )

        assert bill.amount == Decimal("100.01")
        assert bill.members[0].amount == Decimal("33.34")

    @pytest.mark.integration
    async def test_creator_is_reused_across_bills(self, bill_factory):
        first = await bill_factory()
        second = await bill_factory(creator_name="Someone else")

        assert first.creator_id == second.creator_id
        assert second.creator.name == "Asha"

    @pytest.mark.integration
    async def test_members_are_notified_with_their_share(self, bill_factory, sms_provider):
        await bill_factory(amount="50000")

        expected = (
            "Hi! Asha has requested you to split a bill of 25000.00 TZS. "
            "Please pay your share. Reply with PAY to confirm."
        )
        assert sms_provider.messages_to(MEMBER_A) == [expected]
        assert sms_provider.messages_to(MEMBER_B) == [expected]
        assert sms_provider.messages_to("+255700000001") == []

    @pytest.mark.integration
    async def test_sms_failure_does_not_undo_bill(self, bill_service, sms_provider):
        sms_provider.failing_numbers.add(MEMBER_A)
        sms_provider.raise_for.add(MEMBER_B)

        bill = await bill_service.create_bill(
            creator_phone=CREATOR,
            creator_name="Asha",
            amount=Decimal("100"),
            member_phones=[MEMBER_A, MEMBER_B],
        )

        assert await bill_service.get_bill(bill.id) is not None

    @pytest.mark.integration
    @pytest.mark.parametrize("amount", [
        Decimal("0"), Decimal("-5"), Decimal("NaN"), Decimal("0.001"), Decimal("1e30"),
    ])
    async def test_rejects_unstorable_amount(self, bill_service, amount):
        with pytest.raises(ValidationException):
            await bill_service.create_bill(
                creator_phone=CREATOR,
                creator_name="Asha",
                amount=amount,
                member_phones=[MEMBER_A],
            )

        assert await bill_service.get_bills_by_creator(CREATOR) == []

    @pytest.mark.integration
    async def test_rejects_empty_members(self, bill_service):
        with pytest.raises(ValidationException):
            await bill_service.create_bill(
                creator_phone=CREATOR,
                creator_name="Asha",
                amount=Decimal("10"),
                member_phones=[],
            )

    @pytest.mark.integration
    async def test_database_failure_raises_creation_error(self, bill_service, sms_provider):
        with patch.object(
            bill_service.db, "commit", AsyncMock(side_effect=SQLAlchemyError("db down"))
        ):
            with pytest.raises(BillCreationError):
                await bill_service.create_bill(
                    creator_phone=CREATOR,
                    creator_name="Asha",
                    amount=Decimal("10"),
                    member_phones=[MEMBER_A],
                )

        assert sms_provider.sent == []


class TestMarkPaid:
    """Recording payments"""

    @pytest.mark.integration
    async def test_marks_member_paid(self, bill_factory, bill_service):
        bill = await bill_factory()

        assert await bill_service.mark_paid(bill.id, MEMBER_A) is True

        refreshed = await bill_service.get_bill(bill.id)
        paid = next(m for m in refreshed.members if m.member_phone == MEMBER_A)
        assert paid.status == MemberStatus.PAID
        assert paid.paid_at is not None
        assert refreshed.paid_count == 1

    @pytest.mark.integration
    async def test_accepts_local_number_format(self, bill_factory, bill_service):
        bill = await bill_factory()

        assert await bill_service.mark_paid(bill.id, "0712345678") is True

    @pytest.mark.integration
    async def test_second_payment_is_not_applied(self, bill_factory, bill_service):
        bill = await bill_factory()
        await bill_service.mark_paid(bill.id, MEMBER_A)

        assert await bill_service.mark_paid(bill.id, MEMBER_A) is False

    @pytest.mark.integration
    async def test_unknown_bill_or_member(self, bill_factory, bill_service):
        bill = await bill_factory()

        assert await bill_service.mark_paid(bill.id + 100, MEMBER_A) is False
        assert await bill_service.mark_paid(bill.id, "+255799999999") is False

    @pytest.mark.integration
    async def test_repeated_number_pays_one_share_at_a_time(self, bill_factory, bill_service, sms_provider):
        bill = await bill_factory(amount="100", member_phones=[MEMBER_A, MEMBER_A])

        assert await bill_service.mark_paid(bill.id, MEMBER_A) is True
        assert (await bill_service.get_bill(bill.id)).paid_count == 1

        assert await bill_service.mark_paid(bill.id, MEMBER_A) is True
        refreshed = await bill_service.get_bill(bill.id)
        assert refreshed.is_settled
        assert sms_provider.messages_to(CREATOR)[-1].startswith("🎉 Great news!")

        assert await bill_service.mark_paid(bill.id, MEMBER_A) is False

    @pytest.mark.integration
    async def test_payment_notifications(self, bill_factory, bill_service, sms_provider):
        bill = await bill_factory(amount="50000")
        sms_provider.sent.clear()

        await bill_service.mark_paid(bill.id, MEMBER_A)

        assert sms_provider.messages_to(MEMBER_A) == [
            "✅ Payment confirmed! You've paid 25000.00 TZS. Thank you for settling your share."
        ]
        assert sms_provider.messages_to(MEMBER_B) == [
            "1/2 friends have paid. Total bill: 50000.00 TZS. Keep up the good work!"
        ]
        assert sms_provider.messages_to(CREATOR) == []

    @pytest.mark.integration
    async def test_creator_told_when_settled(self, bill_factory, bill_service, sms_provider):
        bill = await bill_factory(amount="50000")
        await bill_service.mark_paid(bill.id, MEMBER_A)
        sms_provider.sent.clear()

        await bill_service.mark_paid(bill.id, MEMBER_B)

        assert sms_provider.messages_to(CREATOR) == [
            "🎉 Great news! All payments for your bill of 50000.00 TZS have been completed. "
            "Thank you for using Split-Bill!"
        ]
        assert (await bill_service.get_bill(bill.id)).is_settled


class TestBillQueries:
    """Lookups"""

    @pytest.mark.integration
    async def test_get_missing_bill(self, bill_service):
        assert await bill_service.get_bill(12345) is None

    @pytest.mark.integration
    async def test_bills_by_creator_newest_first(self, bill_factory, bill_service):
        first = await bill_factory()
        second = await bill_factory()
        await bill_factory(creator_phone="+255700000009")

        bills = await bill_service.get_bills_by_creator(CREATOR)

        assert [b.id for b in bills] == [second.id, first.id]

    @pytest.mark.integration
    async def test_bills_by_member(self, bill_factory, bill_service):
        shared = await bill_factory(member_phones=[MEMBER_A, MEMBER_B])
        await bill_factory(member_phones=[MEMBER_B])

        bills = await bill_service.get_bills_by_member(MEMBER_A)

        assert [b.id for b in bills] == [shared.id]
        assert len(await bill_service.get_bills_by_member(MEMBER_B)) == 2


class TestNotificationService:
    """Templates and fan-out"""

    @pytest.mark.unit
    def test_templates_use_currency(self, sms_provider):
        notifier = NotificationService(sms_provider, currency="KES")

        assert "100.00 KES" in notifier.bill_split_request("Juma", Decimal("100"))
        assert "3/4 friends have paid" in notifier.payment_update(3, 4, Decimal("400"))

    @pytest.mark.unit
    async def test_fan_out_reports_every_result(self, notifier, sms_provider):
        sms_provider.failing_numbers.add(MEMBER_B)
        sms_provider.raise_for.add("+255755555555")

        results = await notifier.fan_out([
            (MEMBER_A, "one"),
            (MEMBER_B, "two"),
            ("+255755555555", "three"),
        ])

        assert [r.success for r in results] == [True, False, False]
        assert results[2].error == "gateway exploded"

    @pytest.mark.unit
    async def test_fan_out_empty(self, notifier):
        assert await notifier.fan_out([]) == []
