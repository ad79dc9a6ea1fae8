"""
State Machine Module for the USSD dialogue
"""
from splitbill.state_machine.states import UssdStep, UssdStatus, UssdOutcome
from splitbill.state_machine.session_store import (
    BaseSessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    UssdSession,
    get_session_store,
)
from splitbill.state_machine.engine import UssdDialogueEngine, UssdRequest, UssdResponse

__all__ = [
    "UssdStep",
    "UssdStatus",
    "UssdOutcome",
    "BaseSessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "UssdSession",
    "get_session_store",
    "UssdDialogueEngine",
    "UssdRequest",
    "UssdResponse",
]
