"""
Drive one USSD bill-splitting dialogue against a running instance.

Plays the gateway: posts the greeting, the amount, the member list and the
confirmation, then marks every member as paid through the mock payment
endpoint and prints the settled bill.

Environment:
    BASE_URL          default http://127.0.0.1:$PORT (PORT defaults to 8000)
    SIM_PHONE         organizer handset, default 0700000001
    SIM_AMOUNT        default 30000
    SIM_MEMBERS       comma-separated, default 0712345678,0698765432
    SIM_SKIP_PAYMENTS set to 1 to stop after the bill is created
"""

from __future__ import annotations

import os
import re
import sys
import uuid
from pathlib import Path

import httpx

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from splitbill.core.logging import get_logger, setup_logging  # noqa: E402
from splitbill.core.validation import PhoneNumberValidator  # noqa: E402


logger = get_logger(__name__)


def _base_url() -> str:
    port = os.environ.get("PORT", "8000")
    return os.environ.get("BASE_URL", f"http://127.0.0.1:{port}").rstrip("/")


def _timeout_seconds() -> float:
    return float(os.environ.get("SIM_TIMEOUT_SECONDS", "10"))


def _check_status(resp: httpx.Response, expected: int = 200) -> None:
    if resp.status_code != expected:
        raise RuntimeError(
            f"Unexpected status {resp.status_code} for {resp.request.method} {resp.request.url}. "
            f"Body: {(resp.text or '')[:500]}"
        )


def ussd_turn(client: httpx.Client, base_url: str, session_id: str, phone: str, text: str) -> dict:
    resp = client.post(f"{base_url}/api/ussd", json={
        "sessionId": session_id,
        "serviceCode": "*384*123#",
        "phoneNumber": phone,
        "text": text,
    })
    _check_status(resp)
    reply = resp.json()
    print(f"\n>>> {text or '(dial)'}\n{reply['status']} {reply['message']}")
    return reply


def run_dialogue(client: httpx.Client, base_url: str, phone: str, amount: str, members: str) -> int:
    """Walk the dialogue to END and return the new bill id"""
    session_id = f"sim-{uuid.uuid4().hex[:12]}"

    for text in ("", amount, members):
        reply = ussd_turn(client, base_url, session_id, phone, text)
        if reply["status"] != "CON":
            raise RuntimeError(f"Dialogue ended early: {reply['message']}")

    reply = ussd_turn(client, base_url, session_id, phone, "1")
    match = re.search(r"Bill ID: (\d+)", reply["message"])
    if reply["status"] != "END" or not match:
        raise RuntimeError(f"Bill was not created: {reply['message']}")
    return int(match.group(1))


def pay_all(client: httpx.Client, base_url: str, bill_id: int) -> dict:
    resp = client.get(f"{base_url}/api/bills/{bill_id}")
    _check_status(resp)

    for member in resp.json()["members"]:
        if member["status"] == "paid":
            continue
        logger.info(
            "Paying member share",
            extra_data={"bill_id": bill_id, "phone": PhoneNumberValidator.mask(member["phone"])}
        )
        paid = client.post(
            f"{base_url}/api/payments/mock",
            json={"billId": bill_id, "memberPhone": member["phone"]},
        )
        _check_status(paid)

    resp = client.get(f"{base_url}/api/bills/{bill_id}")
    _check_status(resp)
    return resp.json()


def main() -> None:
    setup_logging(level="INFO", json_format=False, app_name="split-bill-sim")

    base_url = _base_url()
    phone = os.environ.get("SIM_PHONE", "0700000001")
    amount = os.environ.get("SIM_AMOUNT", "30000")
    members = os.environ.get("SIM_MEMBERS", "0712345678,0698765432")

    logger.info("Starting USSD simulation", extra_data={"base_url": base_url})

    with httpx.Client(timeout=_timeout_seconds()) as client:
        _check_status(client.get(f"{base_url}/health"))

        bill_id = run_dialogue(client, base_url, phone, amount, members)
        logger.info("Bill created", extra_data={"bill_id": bill_id})

        if os.environ.get("SIM_SKIP_PAYMENTS") == "1":
            return

        bill = pay_all(client, base_url, bill_id)

    print(f"\nBill {bill['id']}: {bill['paid_count']}/{len(bill['members'])} paid, "
          f"settled={bill['is_settled']}")
    logger.info("Simulation completed", extra_data={"bill_id": bill_id, "settled": bill["is_settled"]})


if __name__ == "__main__":
    main()
