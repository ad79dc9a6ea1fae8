"""
USSD Dialogue Engine - turns one gateway callback into one menu response

Each callback is a separate HTTP request; the only thing tying them together
is the gateway's sessionId, which keys the session store. A turn runs under
the session lock, reads the stored step, dispatches to the step handler and
either writes the updated session back (CON) or deletes it (END).
"""
from dataclasses import dataclass
from decimal import Decimal

from splitbill.core.config import settings
from splitbill.core.exceptions import SessionBusyError, SessionConflictError
from splitbill.core.logging import bind_ussd_session, get_logger
from splitbill.core.validation import AmountValidator, PhoneNumberValidator
from splitbill.domain.services.base_bill_store import BaseBillStore
from splitbill.state_machine.session_store import BaseSessionStore, UssdSession
from splitbill.state_machine.states import (
    UssdOutcome,
    UssdStatus,
    UssdStep,
    is_valid_transition,
)

logger = get_logger(__name__)


@dataclass
class UssdRequest:
    """One gateway callback"""

    session_id: str
    service_code: str
    phone_number: str
    text: str = ""


@dataclass
class UssdResponse:
    """Menu text for the handset plus CON/END"""

    session_id: str
    service_code: str
    message: str
    status: UssdStatus


CONFIRM_OPTION = "1"
CANCEL_OPTION = "2"

MEMBERS_EXAMPLE = "0712345678,0756789012"
ERROR_MESSAGE = "An error occurred. Please try again."
BUSY_MESSAGE = "Your previous request is still being processed. Please try again."


class UssdDialogueEngine:
    """Drives the amount -> members -> confirmation dialogue"""

    def __init__(
        self,
        store: BaseSessionStore,
        bill_store: BaseBillStore,
        *,
        creator_name: str | None = None,
        currency: str | None = None,
        cumulative_text: bool | None = None,
    ):
        self.store = store
        self.bill_store = bill_store
        self.creator_name = creator_name or settings.USSD_CREATOR_DISPLAY_NAME
        self.currency = currency or settings.CURRENCY
        self.cumulative_text = (
            settings.USSD_CUMULATIVE_TEXT if cumulative_text is None else cumulative_text
        )

    async def handle_turn(self, request: UssdRequest) -> UssdResponse:
        """
        Process one callback.

        Never raises: a busy session answers CON and leaves the session as
        it was; any other failure removes the session and answers END.
        """
        with bind_ussd_session(request.session_id):
            try:
                async with self.store.lock(request.session_id):
                    message, status = await self._process(request)
            except (SessionBusyError, SessionConflictError) as e:
                logger.warning(
                    "USSD turn rejected, session busy",
                    extra_data={"error_code": e.error_code.value}
                )
                return self._response(request, BUSY_MESSAGE, UssdStatus.CON)
            except Exception as e:
                logger.error(
                    "USSD turn failed",
                    extra_data={"error": str(e)},
                    exc_info=True
                )
                await self._discard(request.session_id)
                return self._response(request, ERROR_MESSAGE, UssdStatus.END)

        return self._response(request, message, status)

    async def _process(self, request: UssdRequest) -> tuple[str, UssdStatus]:
        session = await self.store.get_or_create(
            request.session_id, request.phone_number, creator_name=self.creator_name
        )
        text = self._latest_input(request.text)

        handler = self._get_handler(session.step)
        message, outcome, updates = await handler(session, text)

        if isinstance(outcome, UssdOutcome):
            await self.store.remove(request.session_id)
            logger.info(
                "USSD session ended",
                extra_data={"step": session.step.value, "outcome": outcome.value}
            )
            return message, UssdStatus.END

        if not is_valid_transition(session.step, outcome):
            raise ValueError(f"Invalid transition from '{session.step.value}' to '{outcome.value}'")

        # Written even when nothing changed, so the idle timer restarts
        new_session = session.model_copy(update={"step": outcome, **updates})
        await self.store.put(request.session_id, new_session, expected_version=session.version)

        if outcome != session.step:
            logger.info(
                "USSD step advanced",
                extra_data={"from_step": session.step.value, "to_step": outcome.value}
            )
        return message, UssdStatus.CON

    def _latest_input(self, text: str | None) -> str:
        text = (text or "").strip()
        if self.cumulative_text and "*" in text:
            text = text.rsplit("*", 1)[1].strip()
        return text

    def _get_handler(self, step: UssdStep):
        handlers = {
            UssdStep.AWAITING_AMOUNT: self._handle_amount,
            UssdStep.AWAITING_MEMBERS: self._handle_members,
            UssdStep.AWAITING_CONFIRMATION: self._handle_confirmation,
        }
        return handlers[step]

    # ==================== Step handlers ====================
    # Each returns (message, next step or terminal outcome, session field updates)

    async def _handle_amount(self, session: UssdSession, text: str):
        if not text:
            return (
                f"Welcome {session.creator_name}!\n\nEnter the total bill amount:",
                UssdStep.AWAITING_AMOUNT,
                {},
            )

        amount = AmountValidator.parse(text)
        if amount is None:
            return (
                "Invalid amount. Please enter a valid number greater than 0:",
                UssdStep.AWAITING_AMOUNT,
                {},
            )

        return (
            f"Bill amount: {AmountValidator.format(amount)} {self.currency}\n\n"
            f"Enter phone numbers separated by commas (e.g., {MEMBERS_EXAMPLE}):",
            UssdStep.AWAITING_MEMBERS,
            {"amount": amount},
        )

    async def _handle_members(self, session: UssdSession, text: str):
        if not text:
            return (
                "Please enter phone numbers separated by commas:",
                UssdStep.AWAITING_MEMBERS,
                {},
            )

        member_phones = PhoneNumberValidator.parse_list(text)
        if not member_phones:
            return (
                "No valid phone numbers found. "
                "Please enter valid phone numbers separated by commas:",
                UssdStep.AWAITING_MEMBERS,
                {},
            )

        return (
            self._summary(session.amount, member_phones),
            UssdStep.AWAITING_CONFIRMATION,
            {"member_phones": member_phones},
        )

    async def _handle_confirmation(self, session: UssdSession, text: str):
        if text == CONFIRM_OPTION:
            return await self._create_bill(session)

        if text == CANCEL_OPTION:
            return (
                "❌ Bill creation cancelled. Thank you for using Split-Bill!",
                UssdOutcome.CANCELLED,
                {},
            )

        return (
            "Invalid option. Please reply with:\n"
            "1 - Confirm and Create Bill\n"
            "2 - Cancel",
            UssdStep.AWAITING_CONFIRMATION,
            {},
        )

    async def _create_bill(self, session: UssdSession):
        try:
            bill = await self.bill_store.create_bill(
                creator_phone=session.phone_number,
                creator_name=session.creator_name or self.creator_name,
                amount=session.amount,
                member_phones=session.member_phones,
            )
        except Exception as e:
            logger.error(
                "Bill creation from USSD failed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(session.phone_number),
                    "members": len(session.member_phones),
                    "error": str(e),
                },
                exc_info=True
            )
            return (
                "❌ Failed to create bill. Please try again later.",
                UssdOutcome.BILL_FAILED,
                {},
            )

        logger.info(
            "Bill created from USSD",
            extra_data={"bill_id": bill.id, "members": len(bill.members)}
        )
        return (
            "✅ Bill created successfully!\n\n"
            f"Bill ID: {bill.id}\n"
            f"Amount: {AmountValidator.format(bill.amount)} {self.currency}\n"
            f"Members: {len(bill.members)}\n\n"
            "SMS notifications have been sent to all members.",
            UssdOutcome.BILL_CREATED,
            {},
        )

    # ==================== Helpers ====================

    def _summary(self, amount: Decimal, member_phones: list[str]) -> str:
        share = AmountValidator.split(amount, len(member_phones))
        return (
            "📋 Bill Summary:\n"
            f"Total Amount: {AmountValidator.format(amount)} {self.currency}\n"
            f"Members: {len(member_phones)}\n"
            f"Amount per person: {AmountValidator.format(share)} {self.currency}\n\n"
            "Phone Numbers:\n"
            + "\n".join(member_phones)
            + "\n\nReply:\n"
            "1 - Confirm and Create Bill\n"
            "2 - Cancel"
        )

    def _response(self, request: UssdRequest, message: str, status: UssdStatus) -> UssdResponse:
        return UssdResponse(
            session_id=request.session_id,
            service_code=request.service_code,
            message=message,
            status=status,
        )

    async def _discard(self, session_id: str) -> None:
        try:
            await self.store.remove(session_id)
        except Exception as e:
            logger.error(
                "Failed to discard USSD session after error",
                extra_data={"error": str(e)}
            )
