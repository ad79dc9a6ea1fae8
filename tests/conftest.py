"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- A fresh USSD session store per test
- A recording SMS provider in place of the real gateway
- FakeRedis for the Redis session store
- Test data factories
"""
# Settings are read at import time, so the environment is set before importing splitbill
import os
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("SMS_PROVIDER", "log")
os.environ.setdefault("USSD_SESSION_BACKEND", "memory")

import asyncio
import fnmatch
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from splitbill.db.database import Base, get_db
from splitbill.db.models.bill import Bill
from splitbill.domain.services.bill_service import BillService
from splitbill.domain.services.notification_service import NotificationService
from splitbill.domain.services.sms import BaseSmsProvider, SmsSendResult, get_sms_provider
from splitbill.main import app
from splitbill.state_machine.session_store import InMemorySessionStore, get_session_store


# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    import splitbill.db.models  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


# ============================================================================
# SMS
# ============================================================================

class FakeSmsProvider(BaseSmsProvider):
    """Records every message instead of sending it"""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.failing_numbers: set[str] = set()
        self.raise_for: set[str] = set()

    @property
    def provider_name(self) -> str:
        return "fake"

    async def send_sms(self, to: str, body: str) -> SmsSendResult:
        if to in self.raise_for:
            raise RuntimeError("gateway exploded")
        self.sent.append((to, body))
        if to in self.failing_numbers:
            return SmsSendResult(success=False, error="rejected by gateway")
        return SmsSendResult(success=True, message_id=f"fake-{len(self.sent)}")

    def messages_to(self, phone: str) -> list[str]:
        return [body for to, body in self.sent if to == phone]


@pytest.fixture
def sms_provider() -> FakeSmsProvider:
    return FakeSmsProvider()


@pytest.fixture
def notifier(sms_provider: FakeSmsProvider) -> NotificationService:
    return NotificationService(sms_provider, currency="TZS")


@pytest.fixture
def bill_service(db_session: AsyncSession, notifier: NotificationService) -> BillService:
    return BillService(db_session, notifier)


# ============================================================================
# USSD sessions
# ============================================================================

@pytest.fixture
def session_store() -> InMemorySessionStore:
    """Fresh in-memory store with a short lock timeout"""
    return InMemorySessionStore(ttl_seconds=300, lock_timeout_seconds=0.5)


@pytest.fixture(scope="function")
async def test_client(
    db_session: AsyncSession,
    session_store: InMemorySessionStore,
    sms_provider: FakeSmsProvider,
):
    """Create test client with database, session store and SMS overrides"""
    from httpx import AsyncClient, ASGITransport

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_sms_provider] = lambda: sms_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Test Data Factories
# ============================================================================

@pytest.fixture
def bill_factory(bill_service: BillService):
    """Factory for creating bills through the service"""
    async def _create_bill(
        creator_phone: str = "+255700000001",
        creator_name: str = "Asha",
        amount: Decimal | str = "30000",
        member_phones: list[str] | None = None,
        description: str | None = None,
    ) -> Bill:
        return await bill_service.create_bill(
            creator_phone=creator_phone,
            creator_name=creator_name,
            amount=Decimal(amount),
            member_phones=member_phones or ["+255712345678", "+255698765432"],
            description=description,
        )

    return _create_bill


# ============================================================================
# Circuit Breaker Reset
# ============================================================================

@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Reset circuit breakers between tests"""
    from splitbill.core.circuit_breaker import CircuitBreaker
    CircuitBreaker.reset_all()
    yield
    CircuitBreaker.reset_all()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop cached providers and stores between tests"""
    from splitbill.domain.services.sms import reset_providers
    from splitbill.state_machine.session_store import reset_session_store

    reset_providers()
    reset_session_store()
    yield
    reset_providers()
    reset_session_store()


# ============================================================================
# Redis
# ============================================================================

class FakeLock:
    """Stand-in for redis.asyncio.lock.Lock backed by an asyncio.Lock"""

    def __init__(self, inner: asyncio.Lock, blocking_timeout: float | None) -> None:
        self._inner = inner
        self._blocking_timeout = blocking_timeout

    async def acquire(self) -> bool:
        try:
            await asyncio.wait_for(self._inner.acquire(), timeout=self._blocking_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        self._inner.release()


class FakeRedis:
    """In-memory Redis replacement with TTL tracking, SCAN and locks."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._ttls[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> None:
        self._store[key] = value
        self._ttls[key] = ttl

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
            self._ttls.pop(key, None)
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self._store):
            if fnmatch.fnmatch(key, match):
                yield key

    def lock(self, name: str, timeout: float | None = None, blocking_timeout: float | None = None) -> FakeLock:
        inner = self._locks.setdefault(name, asyncio.Lock())
        return FakeLock(inner, blocking_timeout)

    def ttl_of(self, key: str) -> int | None:
        return self._ttls.get(key)

    async def aclose(self) -> None:
        self._store.clear()
        self._ttls.clear()


@pytest.fixture(autouse=True)
def fake_redis():
    """Replace get_redis with FakeRedis for every test."""
    _fake = FakeRedis()

    async def _get_fake_redis():
        return _fake

    with patch("splitbill.core.redis_client.get_redis", _get_fake_redis), \
         patch("splitbill.domain.services.health_service.get_redis", _get_fake_redis):
        yield _fake
