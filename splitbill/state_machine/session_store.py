"""
USSD Session Store

Holds the per-session dialogue state between gateway callbacks. Two backends:
an in-process dict for single-instance deployments and Redis for anything
that runs more than one worker.

Every write goes through put(), which bumps the version; callers that pass
expected_version get compare-and-swap semantics. Turns for one session are
serialized with lock().
"""
from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncIterator, Awaitable, Callable

import redis.asyncio as aioredis
from pydantic import BaseModel, Field
from redis.exceptions import LockError

from splitbill.core.config import settings
from splitbill.core.exceptions import SessionBusyError, SessionConflictError
from splitbill.core.logging import get_logger
from splitbill.core.validation import PhoneNumberValidator
from splitbill.state_machine.states import INITIAL_STEP, UssdStep

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UssdSession(BaseModel):
    """Dialogue state for one gateway sessionId"""

    session_id: str
    step: UssdStep = INITIAL_STEP
    phone_number: str
    amount: Decimal | None = None
    member_phones: list[str] = Field(default_factory=list)
    creator_name: str = "User"
    version: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    last_touched_at: datetime = Field(default_factory=utc_now)


class BaseSessionStore(ABC):
    """
    Keyed session storage shared by every turn of every dialogue.

    Subclasses provide the raw primitives (_load, _save, _delete, count,
    clear, lock, sweep_expired); versioning and get-or-create live here.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        lock_timeout_seconds: float | None = None,
        clock: Clock = utc_now,
    ):
        self.ttl_seconds = ttl_seconds or settings.USSD_SESSION_TTL_SECONDS
        self.lock_timeout_seconds = (
            lock_timeout_seconds
            if lock_timeout_seconds is not None
            else settings.USSD_SESSION_LOCK_TIMEOUT_SECONDS
        )
        self._clock = clock

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Backend name for logs and health output"""

    @abstractmethod
    async def _load(self, session_id: str) -> UssdSession | None:
        """Return a copy of the live session, None when absent or expired"""

    @abstractmethod
    async def _save(self, session: UssdSession) -> None:
        """Persist the session as-is"""

    @abstractmethod
    async def _delete(self, session_id: str) -> bool:
        """Delete the session; True if something was removed"""

    @abstractmethod
    async def count(self) -> int:
        """Number of live sessions"""

    @abstractmethod
    async def clear(self) -> int:
        """Delete every session; returns how many were removed"""

    @abstractmethod
    def lock(self, session_id: str) -> AsyncIterator[None]:
        """
        Async context manager serializing turns for one session.

        Raises:
            SessionBusyError: if the lock is not acquired within lock_timeout_seconds
        """

    @abstractmethod
    async def sweep_expired(self) -> int:
        """Remove idle sessions; returns how many were removed"""

    def is_expired(self, session: UssdSession) -> bool:
        return self._clock() - session.last_touched_at > timedelta(seconds=self.ttl_seconds)

    async def get(self, session_id: str) -> UssdSession | None:
        return await self._load(session_id)

    async def get_or_create(
        self,
        session_id: str,
        phone_number: str,
        creator_name: str | None = None,
    ) -> UssdSession:
        """Return the live session, creating a fresh one at the first step"""
        session = await self._load(session_id)
        if session is not None:
            return session

        now = self._clock()
        session = await self.put(
            session_id,
            UssdSession(
                session_id=session_id,
                phone_number=phone_number,
                creator_name=creator_name or settings.USSD_CREATOR_DISPLAY_NAME,
                created_at=now,
                last_touched_at=now,
            ),
        )
        logger.info(
            "USSD session created",
            extra_data={
                "session_id": session_id,
                "phone": PhoneNumberValidator.mask(phone_number),
                "backend": self.backend_name,
            }
        )
        return session

    async def put(
        self,
        session_id: str,
        session: UssdSession,
        expected_version: int | None = None,
    ) -> UssdSession:
        """
        Store the session and return the stored copy.

        With expected_version=None the write always wins. Otherwise the stored
        version must equal expected_version.

        Raises:
            SessionConflictError: on a version mismatch
        """
        current = await self._load(session_id)
        if expected_version is not None:
            actual = current.version if current is not None else None
            if actual != expected_version:
                raise SessionConflictError(session_id, expected_version, actual)

        base_version = current.version if current is not None else session.version
        stored = session.model_copy(
            update={
                "session_id": session_id,
                "version": base_version + 1,
                "last_touched_at": self._clock(),
            },
            deep=True,
        )
        await self._save(stored)
        return stored.model_copy(deep=True)

    async def remove(self, session_id: str) -> None:
        """Delete the session; removing an unknown id is a no-op"""
        if await self._delete(session_id):
            logger.info(
                "USSD session removed",
                extra_data={"session_id": session_id, "backend": self.backend_name}
            )


class InMemorySessionStore(BaseSessionStore):
    """
    Process-local store.

    Expiry is checked lazily on every access; start_sweeper() additionally
    purges idle sessions in the background so abandoned dialogues do not
    accumulate.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        lock_timeout_seconds: float | None = None,
        clock: Clock = utc_now,
    ):
        super().__init__(ttl_seconds, lock_timeout_seconds, clock)
        self._sessions: dict[str, UssdSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._sweeper: asyncio.Task | None = None

    @property
    def backend_name(self) -> str:
        return "memory"

    async def _load(self, session_id: str) -> UssdSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self.is_expired(session):
            del self._sessions[session_id]
            logger.info("USSD session expired", extra_data={"session_id": session_id})
            return None
        return session.model_copy(deep=True)

    async def _save(self, session: UssdSession) -> None:
        self._sessions[session.session_id] = session

    async def _delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def count(self) -> int:
        await self.sweep_expired()
        return len(self._sessions)

    async def clear(self) -> int:
        removed = len(self._sessions)
        self._sessions.clear()
        return removed

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        session_lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(session_lock.acquire(), timeout=self.lock_timeout_seconds)
            except asyncio.TimeoutError:
                raise SessionBusyError(session_id, self.lock_timeout_seconds) from None
            try:
                yield
            finally:
                session_lock.release()
        finally:
            self._lock_users[session_id] -= 1
            if self._lock_users[session_id] == 0:
                del self._lock_users[session_id]
                self._locks.pop(session_id, None)

    async def sweep_expired(self) -> int:
        expired = [sid for sid, s in self._sessions.items() if self.is_expired(s)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info(
                "Expired USSD sessions swept",
                extra_data={"count": len(expired)}
            )
        return len(expired)

    def start_sweeper(self, interval_seconds: float | None = None) -> None:
        """Start the periodic background sweep on the running loop"""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = interval_seconds or settings.USSD_SESSION_SWEEP_INTERVAL_SECONDS
        self._sweeper = asyncio.create_task(self._sweep_forever(interval))

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep_expired()
            except Exception as e:
                logger.error(
                    "USSD session sweep failed",
                    extra_data={"error": str(e)},
                    exc_info=True
                )


class RedisSessionStore(BaseSessionStore):
    """
    Redis-backed store for multi-worker deployments.

    Sessions live as JSON under ussd:session:<id> with a native TTL that is
    refreshed on every write. Versioned writes are only atomic while the
    caller holds lock(session_id).
    """

    KEY_PREFIX = "ussd:session:"
    LOCK_PREFIX = "ussd:lock:"

    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        ttl_seconds: int | None = None,
        lock_timeout_seconds: float | None = None,
        clock: Clock = utc_now,
        client_factory: Callable[[], Awaitable[aioredis.Redis]] | None = None,
    ):
        super().__init__(ttl_seconds, lock_timeout_seconds, clock)
        self._redis = redis_client
        self._client_factory = client_factory

    @property
    def backend_name(self) -> str:
        return "redis"

    async def _client(self) -> aioredis.Redis:
        if self._redis is None:
            if self._client_factory is None:
                from splitbill.core.redis_client import get_redis
                self._client_factory = get_redis
            self._redis = await self._client_factory()
        return self._redis

    def _key(self, session_id: str) -> str:
        return f"{self.KEY_PREFIX}{session_id}"

    async def _load(self, session_id: str) -> UssdSession | None:
        client = await self._client()
        raw = await client.get(self._key(session_id))
        if raw is None:
            return None
        session = UssdSession.model_validate_json(raw)
        # Redis TTL granularity is one second; the idle rule is still authoritative
        if self.is_expired(session):
            await client.delete(self._key(session_id))
            return None
        return session

    async def _save(self, session: UssdSession) -> None:
        client = await self._client()
        await client.setex(
            self._key(session.session_id),
            self.ttl_seconds,
            session.model_dump_json(),
        )

    async def _delete(self, session_id: str) -> bool:
        client = await self._client()
        return bool(await client.delete(self._key(session_id)))

    async def count(self) -> int:
        client = await self._client()
        total = 0
        async for _ in client.scan_iter(match=f"{self.KEY_PREFIX}*"):
            total += 1
        return total

    async def clear(self) -> int:
        client = await self._client()
        keys = [key async for key in client.scan_iter(match=f"{self.KEY_PREFIX}*")]
        if not keys:
            return 0
        return int(await client.delete(*keys))

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        client = await self._client()
        redis_lock = client.lock(
            f"{self.LOCK_PREFIX}{session_id}",
            timeout=max(self.lock_timeout_seconds * 6, 30.0),
            blocking_timeout=self.lock_timeout_seconds,
        )
        if not await redis_lock.acquire():
            raise SessionBusyError(session_id, self.lock_timeout_seconds)
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as e:
                logger.warning(
                    "USSD session lock expired before release",
                    extra_data={"session_id": session_id, "error": str(e)}
                )

    async def sweep_expired(self) -> int:
        # Keys expire natively
        return 0


_store: BaseSessionStore | None = None
_store_lock = threading.Lock()


def get_session_store() -> BaseSessionStore:
    """Shared session store for the configured backend (FastAPI dependency)"""
    global _store
    if _store is None:
        with _store_lock:
            if _store is None:
                if settings.USSD_SESSION_BACKEND == "redis":
                    _store = RedisSessionStore()
                else:
                    _store = InMemorySessionStore()
                logger.info(
                    "USSD session store initialized",
                    extra_data={"backend": _store.backend_name}
                )
    return _store


def reset_session_store() -> None:
    """Drop the shared store (tests only)"""
    global _store
    with _store_lock:
        _store = None
