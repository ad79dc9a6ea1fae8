"""
Provider Factory - builds the SMS provider selected by SMS_PROVIDER.
"""
from __future__ import annotations

import threading

from splitbill.core.circuit_breaker import get_sms_circuit_breaker
from splitbill.core.config import settings
from splitbill.core.logging import get_logger
from splitbill.domain.services.sms.base_provider import BaseSmsProvider

logger = get_logger(__name__)

_provider: BaseSmsProvider | None = None
_lock = threading.Lock()


def _create_provider(provider_type: str) -> BaseSmsProvider:
    if provider_type == "briq":
        from splitbill.domain.services.sms.briq_provider import BriqSmsProvider

        return BriqSmsProvider(circuit_breaker=get_sms_circuit_breaker())

    if provider_type == "log":
        from splitbill.domain.services.sms.logging_provider import LoggingSmsProvider

        return LoggingSmsProvider()

    raise ValueError(f"Unknown SMS provider: {provider_type}")


def get_sms_provider() -> BaseSmsProvider:
    """Shared SMS provider (FastAPI dependency)"""
    global _provider
    if _provider is None:
        with _lock:
            if _provider is None:
                _provider = _create_provider(settings.SMS_PROVIDER)
                logger.info(
                    "SMS provider initialized",
                    extra_data={"provider": _provider.provider_name},
                )
    return _provider


def reset_providers() -> None:
    """Drop the cached provider (tests only)"""
    global _provider
    with _lock:
        _provider = None
