"""
Circuit Breaker

Stops hammering the SMS gateway once it keeps failing, and lets a few probe
calls through after a cool-down period.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from splitbill.core.exceptions import CircuitBreakerOpenError
from splitbill.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2        # successes in half-open before closing
    timeout_seconds: float = 30.0     # open -> half-open cool-down
    half_open_max_calls: int = 3


class CircuitBreaker:
    """
    Per-service circuit breaker.

    CLOSED counts consecutive failures, OPEN rejects calls with
    CircuitBreakerOpenError, HALF_OPEN admits a limited number of probes.
    """

    _instances: dict[str, "CircuitBreaker"] = {}
    _instances_lock = threading.Lock()

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._half_open_calls = 0
        self._opened_at = 0.0

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """Get or create the breaker for a service"""
        with cls._instances_lock:
            if service_name not in cls._instances:
                cls._instances[service_name] = cls(service_name, config)
            return cls._instances[service_name]

    @classmethod
    def reset_all(cls) -> None:
        """Forget all breakers (for testing)"""
        with cls._instances_lock:
            cls._instances.clear()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
            self._success_count = 0
        else:
            self._failure_count = 0
            self._success_count = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value
            }
        )

    def _can_execute(self) -> bool:
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True
            if self._state == CircuitState.OPEN:
                if self._clock() - self._opened_at < self.config.timeout_seconds:
                    return False
                self._transition_to(CircuitState.HALF_OPEN)
            if self._half_open_calls < self.config.half_open_max_calls:
                self._half_open_calls += 1
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            else:
                self._failure_count = 0

    def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._failure_count += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failure_count,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None
                }
            )
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def get_retry_after(self) -> float:
        """Seconds until the breaker admits a probe"""
        if self._state != CircuitState.OPEN:
            return 0.0
        remaining = self.config.timeout_seconds - (self._clock() - self._opened_at)
        return max(0.0, remaining)

    async def execute(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Await ``func`` under breaker protection.

        Raises:
            CircuitBreakerOpenError: If the breaker rejects the call
        """
        if not self._can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self.record_failure(e)
            raise

        self.record_success()
        return result


def get_sms_circuit_breaker() -> CircuitBreaker:
    """Breaker shared by every outgoing SMS"""
    return CircuitBreaker.get_instance(
        "sms",
        CircuitBreakerConfig(
            failure_threshold=5,
            success_threshold=2,
            timeout_seconds=30.0
        )
    )
