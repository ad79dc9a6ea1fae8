"""
Bill API Routes - REST alternative to the USSD dialogue
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from splitbill.core.exceptions import BillNotFoundError
from splitbill.core.logging import get_logger
from splitbill.core.validation import (
    PhoneNumberValidator,
    amount_validator,
    phone_list_validator,
    phone_validator,
    sanitized_text_validator,
)
from splitbill.db.database import get_db
from splitbill.db.models.bill import Bill
from splitbill.domain.services.bill_service import BillService
from splitbill.domain.services.notification_service import NotificationService
from splitbill.domain.services.sms import BaseSmsProvider, get_sms_provider

logger = get_logger(__name__)

router = APIRouter()


class BillCreate(BaseModel):
    """Schema for creating a bill"""

    model_config = ConfigDict(populate_by_name=True)

    creator_phone: str = Field(alias="creatorPhone")
    creator_name: str = Field(alias="creatorName", min_length=1, max_length=100)
    amount: Decimal
    member_phones: List[str] = Field(alias="memberPhones", min_length=1)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("creator_phone")
    @classmethod
    def validate_creator_phone(cls, v: str) -> str:
        return phone_validator(v)

    @field_validator("member_phones")
    @classmethod
    def validate_member_phones(cls, v: List[str]) -> List[str]:
        return phone_list_validator(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return amount_validator(v)

    @field_validator("creator_name", "description")
    @classmethod
    def sanitize_text(cls, v: str | None) -> str | None:
        return sanitized_text_validator(v, max_length=500)


class CreatorResponse(BaseModel):
    name: str
    phone: str

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    phone: str = Field(validation_alias="member_phone")
    amount: Decimal
    status: str
    paid_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v) -> str:
        return getattr(v, "value", v)


class BillResponse(BaseModel):
    """Bill with creator and members"""

    id: int
    amount: Decimal
    description: str | None
    creator: CreatorResponse
    members: List[MemberResponse]
    paid_count: int
    is_settled: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class BillSummary(BaseModel):
    id: int
    creator_id: int
    amount: Decimal
    description: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


def get_bill_service(
    db: AsyncSession = Depends(get_db),
    sms_provider: BaseSmsProvider = Depends(get_sms_provider),
) -> BillService:
    return BillService(db, NotificationService(sms_provider))


@router.post(
    "",
    response_model=BillResponse,
    status_code=201,
    summary="Create a bill",
    description="Creates a bill split evenly between the member phone numbers and notifies every member by SMS.",
    responses={
        201: {"description": "Bill created"},
        422: {"description": "Validation error in request data"},
        500: {"description": "Bill could not be persisted"},
    },
)
async def create_bill(
    bill_data: BillCreate,
    service: BillService = Depends(get_bill_service),
) -> Bill:
    """
    - **creatorPhone**: organizer's phone number
    - **creatorName**: organizer's display name
    - **amount**: total bill amount, from 0.01 to 9999999999.99
    - **memberPhones**: at least one member phone number
    """
    logger.info(
        "Creating bill via REST",
        extra_data={
            "creator_phone": PhoneNumberValidator.mask(bill_data.creator_phone),
            "members": len(bill_data.member_phones),
        }
    )
    return await service.create_bill(
        creator_phone=bill_data.creator_phone,
        creator_name=bill_data.creator_name,
        amount=bill_data.amount,
        member_phones=bill_data.member_phones,
        description=bill_data.description,
    )


@router.get(
    "/creator/{phone}",
    response_model=List[BillSummary],
    summary="Bills created by a phone number",
)
async def get_bills_by_creator(
    phone: str,
    service: BillService = Depends(get_bill_service),
) -> List[Bill]:
    return await service.get_bills_by_creator(PhoneNumberValidator.normalize(phone) or phone)


@router.get(
    "/member/{phone}",
    response_model=List[BillSummary],
    summary="Bills a phone number participates in",
)
async def get_bills_by_member(
    phone: str,
    service: BillService = Depends(get_bill_service),
) -> List[Bill]:
    return await service.get_bills_by_member(PhoneNumberValidator.normalize(phone) or phone)


@router.get(
    "/{bill_id}",
    response_model=BillResponse,
    summary="Get bill by ID",
    responses={
        200: {"description": "Bill found"},
        404: {"description": "Bill not found"},
        422: {"description": "Bill ID is not an integer"},
    },
)
async def get_bill(
    bill_id: int,
    service: BillService = Depends(get_bill_service),
) -> Bill:
    bill = await service.get_bill(bill_id)
    if bill is None:
        raise BillNotFoundError(bill_id)
    return bill
