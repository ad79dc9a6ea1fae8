"""
Logging SMS provider for development: messages are written to the log only.
"""
from __future__ import annotations

import uuid

from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator
from splitbill.domain.services.sms.base_provider import BaseSmsProvider, SmsSendResult

logger = get_logger(__name__)


class LoggingSmsProvider(BaseSmsProvider):

    @property
    def provider_name(self) -> str:
        return "log"

    async def send_sms(self, to: str, body: str) -> SmsSendResult:
        message_id = f"log-{uuid.uuid4().hex[:12]}"
        logger.info(
            "SMS (not delivered, log provider)",
            extra_data={
                "phone": PhoneNumberValidator.mask(to),
                "message_id": message_id,
                "body": body,
            }
        )
        return SmsSendResult(success=True, message_id=message_id)
