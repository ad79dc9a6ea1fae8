"""
USSD API Routes - gateway callback and session diagnostics
"""
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from splitbill.api.dependencies.diagnostics import require_development
from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator
from splitbill.db.database import get_db
from splitbill.domain.services.bill_service import BillService
from splitbill.domain.services.notification_service import NotificationService
from splitbill.domain.services.sms import BaseSmsProvider, get_sms_provider
from splitbill.state_machine.engine import UssdDialogueEngine, UssdRequest
from splitbill.state_machine.session_store import BaseSessionStore, get_session_store
from splitbill.state_machine.states import UssdStatus

logger = get_logger(__name__)

router = APIRouter()


class UssdCallback(BaseModel):
    """One gateway callback (Africa's Talking field names)"""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId", min_length=1)
    service_code: str = Field(alias="serviceCode", min_length=1)
    phone_number: str = Field(alias="phoneNumber", min_length=1)
    text: str = ""


class UssdReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    service_code: str = Field(alias="serviceCode")
    message: str
    status: UssdStatus


@router.post(
    "",
    response_model=UssdReply,
    summary="USSD gateway callback",
    description=(
        "Processes one turn of the bill-splitting dialogue. "
        "status=CON keeps the session open, status=END closes it."
    ),
    responses={
        200: {"description": "Menu text for the handset"},
        422: {"description": "Missing or empty required fields"},
    },
)
async def ussd_callback(
    callback: UssdCallback,
    db: AsyncSession = Depends(get_db),
    store: BaseSessionStore = Depends(get_session_store),
    sms_provider: BaseSmsProvider = Depends(get_sms_provider),
) -> UssdReply:
    engine = UssdDialogueEngine(store, BillService(db, NotificationService(sms_provider)))
    response = await engine.handle_turn(
        UssdRequest(
            session_id=callback.session_id,
            service_code=callback.service_code,
            phone_number=PhoneNumberValidator.normalize(callback.phone_number)
            or callback.phone_number,
            text=callback.text,
        )
    )
    return UssdReply(
        session_id=response.session_id,
        service_code=response.service_code,
        message=response.message,
        status=response.status,
    )


@router.get(
    "/health",
    summary="USSD service health",
    description="Service status and the number of live sessions.",
)
async def ussd_health(
    store: BaseSessionStore = Depends(get_session_store),
) -> dict[str, Any]:
    return {
        "status": "healthy",
        "service": "USSD",
        "session_backend": store.backend_name,
        "session_count": await store.count(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get(
    "/sessions/{session_id}",
    summary="Inspect a session (development only)",
    dependencies=[Depends(require_development)],
    responses={404: {"description": "Unknown session, or not in development"}},
)
async def get_session(
    session_id: str,
    store: BaseSessionStore = Depends(get_session_store),
) -> dict[str, Any]:
    session = await store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.model_dump(mode="json")


@router.delete(
    "/sessions",
    summary="Clear all sessions (development only)",
    dependencies=[Depends(require_development)],
)
async def clear_sessions(
    store: BaseSessionStore = Depends(get_session_store),
) -> dict[str, Any]:
    cleared = await store.clear()
    logger.info("USSD sessions cleared", extra_data={"count": cleared})
    return {"success": True, "cleared": cleared}
