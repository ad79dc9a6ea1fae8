"""
Payment API Routes - mock payment endpoint standing in for a payment provider
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from splitbill.api.routes.bills import get_bill_service
from splitbill.core.exceptions import PaymentNotAppliedError
from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator, phone_validator
from splitbill.domain.services.bill_service import BillService

logger = get_logger(__name__)

router = APIRouter()


class MockPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    bill_id: int = Field(alias="billId", gt=0)
    member_phone: str = Field(alias="memberPhone")

    @field_validator("member_phone")
    @classmethod
    def validate_member_phone(cls, v: str) -> str:
        return phone_validator(v)


class MockPaymentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    bill_id: int = Field(alias="billId")
    member_phone: str = Field(alias="memberPhone")
    timestamp: datetime


@router.post(
    "/mock",
    response_model=MockPaymentResponse,
    summary="Record a mock payment",
    description="Marks one member of a bill as paid and sends the payment SMS updates.",
    responses={
        200: {"description": "Payment recorded"},
        400: {"description": "Bill or member not found, or payment already processed"},
    },
)
async def mock_payment(
    payment: MockPaymentRequest,
    service: BillService = Depends(get_bill_service),
) -> MockPaymentResponse:
    logger.info(
        "Mock payment received",
        extra_data={
            "bill_id": payment.bill_id,
            "phone": PhoneNumberValidator.mask(payment.member_phone),
        }
    )
    if not await service.mark_paid(payment.bill_id, payment.member_phone):
        raise PaymentNotAppliedError(payment.bill_id, payment.member_phone)

    return MockPaymentResponse(
        success=True,
        message="Payment processed successfully",
        bill_id=payment.bill_id,
        member_phone=payment.member_phone,
        timestamp=datetime.now(timezone.utc),
    )
