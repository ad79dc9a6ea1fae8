"""
SMS API Routes - direct sends through the configured provider
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator

from splitbill.core.circuit_breaker import get_sms_circuit_breaker
from splitbill.core.exceptions import SmsError
from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator, phone_validator
from splitbill.domain.services.sms import BaseSmsProvider, get_sms_provider

logger = get_logger(__name__)

router = APIRouter()

SMS_MAX_LENGTH = 160
BULK_MAX_MESSAGES = 100


class SmsMessage(BaseModel):
    to: str
    message: str = Field(min_length=1, max_length=SMS_MAX_LENGTH)

    @field_validator("to")
    @classmethod
    def validate_to(cls, v: str) -> str:
        return phone_validator(v)


class BulkSmsRequest(BaseModel):
    messages: List[SmsMessage] = Field(min_length=1, max_length=BULK_MAX_MESSAGES)


class SmsSendResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message_id: str | None = Field(default=None, alias="messageId")
    message: str


class BulkSmsResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str
    success: bool
    message_id: str | None = Field(default=None, alias="messageId")
    error: str | None = None


class BulkSmsResponse(BaseModel):
    success: bool
    total: int
    successful: int
    failed: int
    results: List[BulkSmsResult]


@router.post(
    "/send",
    response_model=SmsSendResponse,
    summary="Send one SMS",
    responses={
        422: {"description": "Invalid number or message longer than 160 characters"},
        503: {"description": "SMS gateway failed or rejected the message"},
    },
)
async def send_sms(
    sms: SmsMessage,
    provider: BaseSmsProvider = Depends(get_sms_provider),
) -> SmsSendResponse:
    result = await provider.send_sms(sms.to, sms.message)
    if not result.success:
        raise SmsError(result.error or "send failed", details={"to": PhoneNumberValidator.mask(sms.to)})
    return SmsSendResponse(
        success=True,
        message_id=result.message_id,
        message="SMS sent successfully",
    )


@router.post(
    "/bulk",
    response_model=BulkSmsResponse,
    summary="Send up to 100 SMS",
    description="Sends every message concurrently and reports a result per message.",
)
async def send_bulk_sms(
    request: BulkSmsRequest,
    provider: BaseSmsProvider = Depends(get_sms_provider),
) -> BulkSmsResponse:
    sent = await asyncio.gather(
        *(provider.send_sms(msg.to, msg.message) for msg in request.messages)
    )
    results = [
        BulkSmsResult(to=msg.to, success=r.success, message_id=r.message_id, error=r.error)
        for msg, r in zip(request.messages, sent)
    ]
    successful = sum(1 for r in results if r.success)

    logger.info(
        "Bulk SMS finished",
        extra_data={"total": len(results), "failed": len(results) - successful}
    )
    return BulkSmsResponse(
        success=True,
        total=len(results),
        successful=successful,
        failed=len(results) - successful,
        results=results,
    )


@router.get("/health", summary="SMS provider health")
async def sms_health(
    provider: BaseSmsProvider = Depends(get_sms_provider),
) -> dict[str, Any]:
    return {
        "status": "healthy",
        "service": "SMS",
        "provider": provider.provider_name,
        "circuit_breaker": get_sms_circuit_breaker().state.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
