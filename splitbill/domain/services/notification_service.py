"""
Notification Service - SMS templates and concurrent fan-out for bill events

Sending is best-effort: a failed or raising send is logged and never reaches
the caller.
"""
import asyncio
from decimal import Decimal
from typing import Iterable

from splitbill.core.config import settings
from splitbill.core.logging import get_logger
from splitbill.core.validation import AmountValidator, PhoneNumberValidator
from splitbill.domain.services.sms.base_provider import BaseSmsProvider, SmsSendResult

logger = get_logger(__name__)


class NotificationService:
    """Formats bill notifications and sends them through an SMS provider"""

    def __init__(self, provider: BaseSmsProvider, currency: str | None = None):
        self.provider = provider
        self.currency = currency or settings.CURRENCY

    # ==================== Templates ====================

    def bill_split_request(self, organizer_name: str, share: Decimal) -> str:
        return (
            f"Hi! {organizer_name} has requested you to split a bill of "
            f"{AmountValidator.format(share)} {self.currency}. "
            "Please pay your share. Reply with PAY to confirm."
        )

    def payment_update(self, paid_count: int, total_count: int, bill_amount: Decimal) -> str:
        return (
            f"{paid_count}/{total_count} friends have paid. "
            f"Total bill: {AmountValidator.format(bill_amount)} {self.currency}. "
            "Keep up the good work!"
        )

    def payment_completion(self, bill_amount: Decimal) -> str:
        return (
            "🎉 Great news! All payments for your bill of "
            f"{AmountValidator.format(bill_amount)} {self.currency} have been completed. "
            "Thank you for using Split-Bill!"
        )

    def payment_confirmation(self, share: Decimal) -> str:
        return (
            f"✅ Payment confirmed! You've paid {AmountValidator.format(share)} {self.currency}. "
            "Thank you for settling your share."
        )

    # ==================== Sending ====================

    async def send(self, to: str, body: str) -> SmsSendResult:
        """Send one message; exceptions become a failed result"""
        try:
            result = await self.provider.send_sms(to, body)
        except Exception as e:
            logger.error(
                "SMS provider raised",
                extra_data={
                    "phone": PhoneNumberValidator.mask(to),
                    "provider": self.provider.provider_name,
                    "error": str(e),
                },
                exc_info=True
            )
            return SmsSendResult(success=False, error=str(e))

        if not result.success:
            logger.warning(
                "SMS not delivered",
                extra_data={
                    "phone": PhoneNumberValidator.mask(to),
                    "provider": self.provider.provider_name,
                    "error": result.error,
                }
            )
        return result

    async def fan_out(self, messages: Iterable[tuple[str, str]]) -> list[SmsSendResult]:
        """Send (phone, body) pairs concurrently; order of delivery is not guaranteed"""
        messages = list(messages)
        if not messages:
            return []

        results = await asyncio.gather(*(self.send(to, body) for to, body in messages))

        failed = sum(1 for r in results if not r.success)
        logger.info(
            "Notification fan-out finished",
            extra_data={"total": len(results), "failed": failed}
        )
        return list(results)

    # ==================== Bill events ====================

    async def notify_bill_created(
        self,
        organizer_name: str,
        members: Iterable[tuple[str, Decimal]],
    ) -> list[SmsSendResult]:
        """Ask every member to pay their share"""
        return await self.fan_out(
            (phone, self.bill_split_request(organizer_name, share))
            for phone, share in members
        )

    async def notify_payment(
        self,
        *,
        payer_phone: str,
        payer_share: Decimal,
        other_member_phones: list[str],
        creator_phone: str | None,
        bill_amount: Decimal,
        paid_count: int,
        total_count: int,
    ) -> list[SmsSendResult]:
        """
        Payment fan-out: confirmation to the payer, progress to everyone
        else, and a completion notice to the creator once all have paid.
        """
        messages = [(payer_phone, self.payment_confirmation(payer_share))]
        update = self.payment_update(paid_count, total_count, bill_amount)
        messages.extend((phone, update) for phone in other_member_phones)
        if paid_count == total_count and creator_phone:
            messages.append((creator_phone, self.payment_completion(bill_amount)))
        return await self.fan_out(messages)
