"""
State Definitions for the USSD bill-splitting dialogue
"""
from enum import Enum


class UssdStep(str, Enum):
    """Where a USSD session is in the bill creation dialogue"""

    AWAITING_AMOUNT = "AWAITING_AMOUNT"
    AWAITING_MEMBERS = "AWAITING_MEMBERS"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"


class UssdStatus(str, Enum):
    """Gateway response type: CON keeps the session open, END closes it"""

    CON = "CON"
    END = "END"


class UssdOutcome(str, Enum):
    """Ways a dialogue terminates (the session is deleted in every case)"""

    BILL_CREATED = "BILL_CREATED"
    BILL_FAILED = "BILL_FAILED"
    CANCELLED = "CANCELLED"


# Steps only move forward; staying put is a re-prompt
USSD_TRANSITIONS = {
    UssdStep.AWAITING_AMOUNT: [UssdStep.AWAITING_AMOUNT, UssdStep.AWAITING_MEMBERS],
    UssdStep.AWAITING_MEMBERS: [UssdStep.AWAITING_MEMBERS, UssdStep.AWAITING_CONFIRMATION],
    UssdStep.AWAITING_CONFIRMATION: [UssdStep.AWAITING_CONFIRMATION],
}

USSD_TERMINAL_OUTCOMES = {
    UssdStep.AWAITING_CONFIRMATION: [
        UssdOutcome.BILL_CREATED,
        UssdOutcome.BILL_FAILED,
        UssdOutcome.CANCELLED,
    ],
}

INITIAL_STEP = UssdStep.AWAITING_AMOUNT


def is_valid_transition(current: UssdStep, target: UssdStep) -> bool:
    """Check if moving from current to target step is allowed"""
    return target in USSD_TRANSITIONS.get(current, [])
