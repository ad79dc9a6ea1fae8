"""
SMS provider interface.

Business code depends on BaseSmsProvider only; the gateway behind it is
chosen by SMS_PROVIDER.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class SmsSendResult:
    """Outcome of one send; providers report failures here instead of raising"""

    success: bool
    message_id: str | None = None
    error: str | None = None


class BaseSmsProvider(ABC):
    """
    Uniform interface for sending SMS.

    Implementations own the HTTP call, retries and circuit breaking.
    """

    @abstractmethod
    async def send_sms(self, to: str, body: str) -> SmsSendResult:
        """
        Send one text message.

        Args:
            to: Normalized phone number (+255XXXXXXXXX).
            body: Message text, sent as-is.

        Returns:
            SmsSendResult; never raises for delivery failures.
        """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider name for logs and health output"""
