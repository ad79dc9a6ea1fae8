"""
Tests for the bill, payment and SMS REST endpoints
"""
import pytest

CREATOR = "+255700000001"
MEMBER_A = "+255712345678"
MEMBER_B = "+255698765432"


def bill_payload(**overrides) -> dict:
    payload = {
        "creatorPhone": "0700000001",
        "creatorName": "Asha",
        "amount": "50000",
        "memberPhones": ["0712345678", "0698765432"],
        "description": "Dinner",
    }
    payload.update(overrides)
    return payload


class TestBillsApi:
    """/api/bills"""

    @pytest.mark.integration
    async def test_create_bill(self, test_client, sms_provider):
        response = await test_client.post("/api/bills", json=bill_payload())

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == 1
        assert float(data["amount"]) == 50000
        assert data["description"] == "Dinner"
        assert data["creator"] == {"name": "Asha", "phone": CREATOR}
        assert [m["phone"] for m in data["members"]] == [MEMBER_A, MEMBER_B]
        assert all(float(m["amount"]) == 25000 for m in data["members"])
        assert all(m["status"] == "pending" for m in data["members"])
        assert data["paid_count"] == 0
        assert data["is_settled"] is False
        assert len(sms_provider.sent) == 2

    @pytest.mark.integration
    @pytest.mark.parametrize("overrides", [
        {"amount": "0"},
        {"amount": "-10"},
        {"amount": "abc"},
        {"amount": "0.001"},
        {"amount": "1e30"},
        {"memberPhones": ["07\u0661\u0662\u0663\u0664\u0665\u0666\u0667\u0668"]},
        {"memberPhones": []},
        {"memberPhones": ["0712345678", "bogus"]},
        {"creatorPhone": "12345"},
        {"creatorName": ""},
    ])
    async def test_create_bill_validation(self, test_client, overrides):
        response = await test_client.post("/api/bills", json=bill_payload(**overrides))
        assert response.status_code == 422

    @pytest.mark.integration
    async def test_get_bill(self, test_client, bill_factory):
        bill = await bill_factory()

        response = await test_client.get(f"/api/bills/{bill.id}")

        assert response.status_code == 200
        assert response.json()["id"] == bill.id

    @pytest.mark.integration
    async def test_get_missing_bill(self, test_client):
        response = await test_client.get("/api/bills/999")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ERR_2001"

    @pytest.mark.integration
    async def test_bills_by_creator_accepts_local_format(self, test_client, bill_factory):
        await bill_factory()
        await bill_factory()

        response = await test_client.get("/api/bills/creator/0700000001")

        assert response.status_code == 200
        assert len(response.json()) == 2

    @pytest.mark.integration
    async def test_bills_by_member(self, test_client, bill_factory):
        await bill_factory(member_phones=[MEMBER_A])
        await bill_factory(member_phones=[MEMBER_B])

        response = await test_client.get(f"/api/bills/member/{MEMBER_B}")

        assert [b["id"] for b in response.json()] == [2]


class TestPaymentsApi:
    """/api/payments/mock"""

    @pytest.mark.integration
    async def test_mock_payment(self, test_client, bill_factory):
        bill = await bill_factory()

        response = await test_client.post(
            "/api/payments/mock", json={"billId": bill.id, "memberPhone": "0712345678"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["billId"] == bill.id
        assert data["memberPhone"] == MEMBER_A

        refreshed = (await test_client.get(f"/api/bills/{bill.id}")).json()
        assert refreshed["paid_count"] == 1

    @pytest.mark.integration
    async def test_duplicate_payment_rejected(self, test_client, bill_factory):
        bill = await bill_factory()
        body = {"billId": bill.id, "memberPhone": MEMBER_A}
        await test_client.post("/api/payments/mock", json=body)

        response = await test_client.post("/api/payments/mock", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["message"] == (
            "Bill or member not found, or payment already processed"
        )

    @pytest.mark.integration
    @pytest.mark.parametrize("body", [
        {"billId": 0, "memberPhone": MEMBER_A},
        {"billId": 1, "memberPhone": "nope"},
        {"memberPhone": MEMBER_A},
    ])
    async def test_invalid_payment_request(self, test_client, body):
        response = await test_client.post("/api/payments/mock", json=body)
        assert response.status_code == 422


class TestSmsApi:
    """/api/sms"""

    @pytest.mark.integration
    async def test_send(self, test_client, sms_provider):
        response = await test_client.post(
            "/api/sms/send", json={"to": "0712345678", "message": "Hello"}
        )

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert sms_provider.sent == [(MEMBER_A, "Hello")]

    @pytest.mark.integration
    async def test_send_too_long(self, test_client):
        response = await test_client.post(
            "/api/sms/send", json={"to": MEMBER_A, "message": "x" * 161}
        )
        assert response.status_code == 422

    @pytest.mark.integration
    async def test_send_failure_is_503(self, test_client, sms_provider):
        sms_provider.failing_numbers.add(MEMBER_A)

        response = await test_client.post(
            "/api/sms/send", json={"to": MEMBER_A, "message": "Hello"}
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "ERR_5001"

    @pytest.mark.integration
    async def test_bulk(self, test_client, sms_provider):
        sms_provider.failing_numbers.add(MEMBER_B)

        response = await test_client.post("/api/sms/bulk", json={"messages": [
            {"to": MEMBER_A, "message": "one"},
            {"to": MEMBER_B, "message": "two"},
        ]})

        data = response.json()
        assert data["total"] == 2
        assert data["successful"] == 1
        assert data["failed"] == 1
        assert [r["success"] for r in data["results"]] == [True, False]

    @pytest.mark.integration
    async def test_bulk_limits(self, test_client):
        empty = await test_client.post("/api/sms/bulk", json={"messages": []})
        too_many = await test_client.post("/api/sms/bulk", json={"messages": [
            {"to": MEMBER_A, "message": "hi"} for _ in range(101)
        ]})

        assert empty.status_code == 422
        assert too_many.status_code == 422

    @pytest.mark.integration
    async def test_health(self, test_client):
        response = await test_client.get("/api/sms/health")

        data = response.json()
        assert data["provider"] == "fake"
        assert data["circuit_breaker"] == "closed"


class TestAppHealth:
    """/health and /health/ready"""

    @pytest.mark.integration
    async def test_liveness(self, test_client):
        response = await test_client.get("/health")
        assert response.json() == {"status": "healthy"}

    @pytest.mark.integration
    async def test_readiness_degraded_when_db_down(self, test_client):
        from unittest.mock import AsyncMock, patch

        with patch(
            "splitbill.domain.services.health_service._check_db",
            AsyncMock(return_value="error: db_unavailable"),
        ):
            response = await test_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["redis"] == "skipped"
