"""
Fixtures and helpers for end-to-end scenario tests.

Provides:
- A USSD gateway double that remembers sessionId and phone per dialogue
- Concise helpers for paying and fetching bills over HTTP
"""
import itertools
from typing import Optional

import pytest

_session_counter = itertools.count(1)


class UssdDialogue:
    """One handset session talking to POST /api/ussd"""

    def __init__(self, client, phone: str, *, session_id: Optional[str] = None, service_code: str = "*384*123#"):
        self.client = client
        self.phone = phone
        self.session_id = session_id or f"ATUid_{next(_session_counter)}"
        self.service_code = service_code

    async def send(self, text: str = "") -> dict:
        """Send one turn, assert 200 and return the JSON reply"""
        resp = await self.client.post("/api/ussd", json={
            "sessionId": self.session_id,
            "serviceCode": self.service_code,
            "phoneNumber": self.phone,
            "text": text,
        })
        assert resp.status_code == 200, f"USSD callback returned {resp.status_code}: {resp.text}"
        return resp.json()


@pytest.fixture
def dialogue(test_client):
    """Factory for USSD dialogues"""
    def _create(phone: str, **kwargs) -> UssdDialogue:
        return UssdDialogue(test_client, phone, **kwargs)

    return _create


async def pay(client, bill_id: int, phone: str) -> int:
    """Record a mock payment and return the HTTP status"""
    resp = await client.post("/api/payments/mock", json={"billId": bill_id, "memberPhone": phone})
    return resp.status_code


async def fetch_bill(client, bill_id: int) -> dict:
    resp = await client.get(f"/api/bills/{bill_id}")
    assert resp.status_code == 200, f"GET bill returned {resp.status_code}: {resp.text}"
    return resp.json()
