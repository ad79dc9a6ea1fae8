"""
Briq SMS provider.

POST {BRIQ_BASE_URL}/sms/send with a bearer token and a JSON body of
{to, message, sender_id}. The gateway answers {success, message_id, error}.
"""
from __future__ import annotations

import asyncio

import httpx

from splitbill.core.circuit_breaker import CircuitBreaker
from splitbill.core.config import settings
from splitbill.core.exceptions import SmsError
from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator
from splitbill.domain.services.sms.base_provider import BaseSmsProvider, SmsSendResult

logger = get_logger(__name__)


class BriqSmsProvider(BaseSmsProvider):
    """SMS over the Briq HTTP API with retry and circuit breaker"""

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        *,
        api_key: str | None = None,
        sender_id: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._circuit_breaker = circuit_breaker
        self._api_key = api_key if api_key is not None else settings.BRIQ_API_KEY
        self._sender_id = sender_id if sender_id is not None else settings.BRIQ_SENDER_ID
        self._base_url = (base_url or settings.BRIQ_BASE_URL).rstrip("/")
        self._timeout = timeout_seconds or settings.SMS_TIMEOUT_SECONDS
        self._max_retries = max_retries or settings.SMS_MAX_RETRIES
        self._transient_status_codes = settings.transient_status_codes

    @property
    def provider_name(self) -> str:
        return "briq"

    async def send_sms(self, to: str, body: str) -> SmsSendResult:
        """Send through the breaker; every failure becomes a failed result"""
        if not self._api_key or not self._sender_id:
            logger.error(
                "Briq credentials missing, SMS not sent",
                extra_data={"phone": PhoneNumberValidator.mask(to)}
            )
            return SmsSendResult(success=False, error="SMS provider is not configured")

        payload = {
            "to": to,
            "message": body,
            "sender_id": self._sender_id,
        }

        try:
            result = await self._circuit_breaker.execute(self._request_with_retry, payload)
        except Exception as exc:
            logger.error(
                "SMS send failed",
                extra_data={
                    "phone": PhoneNumberValidator.mask(to),
                    "error": str(exc),
                    "provider": self.provider_name,
                },
            )
            return SmsSendResult(success=False, error=str(exc))

        logger.info(
            "SMS sent",
            extra_data={
                "phone": PhoneNumberValidator.mask(to),
                "message_id": result.message_id,
                "provider": self.provider_name,
            }
        )
        return result

    async def _request_with_retry(self, payload: dict) -> SmsSendResult:
        """POST with exponential backoff on transient failures.

        Raises SmsError once every attempt has failed, so the breaker counts it.
        """
        phone_masked = PhoneNumberValidator.mask(payload.get("to", ""))
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            for attempt in range(self._max_retries):
                try:
                    response = await client.post(
                        f"{self._base_url}/sms/send",
                        json=payload,
                        headers=headers,
                    )
                except (httpx.TimeoutException, httpx.RequestError) as exc:
                    if attempt < self._max_retries - 1:
                        backoff = 2 ** attempt
                        logger.warning(
                            "SMS request failed, retrying",
                            extra_data={
                                "phone": phone_masked,
                                "error": str(exc) or type(exc).__name__,
                                "attempt": attempt + 1,
                                "backoff_seconds": backoff,
                            },
                        )
                        await asyncio.sleep(backoff)
                        continue
                    raise SmsError(
                        message=f"sms/send network error: {str(exc) or type(exc).__name__}",
                        details={
                            "timeout": isinstance(exc, httpx.TimeoutException),
                            "attempts": self._max_retries,
                        },
                    ) from exc

                if response.status_code in (200, 201):
                    return self._parse_response(response)

                if (
                    response.status_code in self._transient_status_codes
                    and attempt < self._max_retries - 1
                ):
                    backoff = 2 ** attempt
                    logger.warning(
                        "Transient SMS gateway error, retrying",
                        extra_data={
                            "phone": phone_masked,
                            "status_code": response.status_code,
                            "attempt": attempt + 1,
                            "max_retries": self._max_retries,
                            "backoff_seconds": backoff,
                        },
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise SmsError.from_response("sms/send", response)

        raise SmsError(message="sms/send was not attempted")

    def _parse_response(self, response: httpx.Response) -> SmsSendResult:
        try:
            data = response.json()
        except ValueError:
            raise SmsError.from_response(
                "sms/send", response, message="sms/send returned a non-JSON body"
            )

        if not data.get("success", False):
            # Rejected by the gateway (bad number, no credit); not a transport failure
            return SmsSendResult(success=False, error=data.get("error") or "rejected by gateway")

        message_id = data.get("message_id")
        return SmsSendResult(success=True, message_id=str(message_id) if message_id else None)
