"""
Bill Store interface - what the USSD engine and the REST layer need from
bill persistence.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal

from splitbill.db.models.bill import Bill


class BaseBillStore(ABC):

    @abstractmethod
    async def create_bill(
        self,
        creator_phone: str,
        creator_name: str,
        amount: Decimal,
        member_phones: list[str],
        description: str | None = None,
    ) -> Bill:
        """
        Persist the creator, the bill and its members atomically, then
        notify every member (best-effort).

        Raises:
            ValidationException: for a non-positive amount or no members
            BillCreationError: when persistence fails
        """

    @abstractmethod
    async def mark_paid(self, bill_id: int, member_phone: str) -> bool:
        """
        Flip one pending member to paid.

        Returns False for an unknown bill or member, or a member already paid.
        """

    @abstractmethod
    async def get_bill(self, bill_id: int) -> Bill | None:
        """Bill with creator and members, None if absent"""

    @abstractmethod
    async def get_bills_by_creator(self, creator_phone: str) -> list[Bill]:
        """Bills created by a phone number, newest first"""

    @abstractmethod
    async def get_bills_by_member(self, member_phone: str) -> list[Bill]:
        """Bills a phone number participates in, newest first"""
