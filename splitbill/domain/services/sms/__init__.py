"""
SMS Provider Abstraction Layer

Lets the Briq gateway be swapped for the logging provider without touching
notification code.
"""
from splitbill.domain.services.sms.base_provider import BaseSmsProvider, SmsSendResult
from splitbill.domain.services.sms.provider_factory import get_sms_provider, reset_providers

__all__ = [
    "BaseSmsProvider",
    "SmsSendResult",
    "get_sms_provider",
    "reset_providers",
]
