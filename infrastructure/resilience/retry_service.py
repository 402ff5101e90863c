"""
Fault tolerance for document store calls.

Durable writes share one circuit breaker so a store outage fails fast instead
of stacking up slow failures; idempotent multi-step operations (the stepwise
conversation delete) are retried with exponential backoff.
"""

import asyncio
import random
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from infrastructure.monitoring.logging_service import get_logger
from infrastructure.store.base import StoreUnavailableError

logger = get_logger(__name__)

T = TypeVar("T")

# Transient failures: worth retrying, and evidence that the store is unhealthy
RETRIABLE_ERRORS = (
    StoreUnavailableError,
    ConnectionError,
    asyncio.TimeoutError,
)


def is_retriable(error: BaseException) -> bool:
    return isinstance(error, RETRIABLE_ERRORS)


def exponential_backoff_delay(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Delay before retry number `attempt` (0 for the first retry)

    Doubles per attempt up to max_delay, plus up to 10% jitter so clients
    that failed together do not retry together.
    """
    delay = min(base_delay * (2 ** attempt), max_delay)
    return delay + random.uniform(0, 0.1 * delay)


class CircuitBreakerState(Enum):
    CLOSED = "closed"        # calls go through
    OPEN = "open"            # calls fail fast
    HALF_OPEN = "half_open"  # one trial call decides


class CircuitBreakerError(Exception):
    """Raised instead of calling the store while the circuit is open"""

    def __init__(self, name: str, retry_after: float):
        super().__init__(f"Circuit breaker '{name}' is open; store calls resume in {retry_after:.0f}s")
        self.name = name
        self.retry_after = retry_after


class CircuitBreaker:
    """
    Circuit breaker around awaited store calls.

    Only `expected_exception` failures count towards opening the circuit;
    errors such as a missing document say nothing about store health and are
    passed through untouched.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: tuple = RETRIABLE_ERRORS,
        name: str = "store",
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Args:
            failure_threshold: Consecutive counted failures that open the circuit
            recovery_timeout: Seconds the circuit stays open before a trial call
            expected_exception: Exception types that count as failures
            name: Used in logs and errors
            clock: Time source, replaceable in tests
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.expected_exception = expected_exception
        self._clock = clock

        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.last_failure_time: Optional[datetime] = None

        logger.debug(f"Circuit breaker '{name}': threshold={failure_threshold}, recovery={recovery_timeout}s")

    def _transition(self, state: CircuitBreakerState, reason: str) -> None:
        self.state = state
        log = logger.warning if state is CircuitBreakerState.OPEN else logger.info
        log(f"Circuit breaker '{self.name}' -> {state.value} ({reason})")

    def remaining_timeout(self) -> float:
        """Seconds until an open circuit allows a trial call"""
        if self.state is not CircuitBreakerState.OPEN or self.last_failure_time is None:
            return 0.0
        elapsed = (self._clock() - self.last_failure_time).total_seconds()
        return max(0.0, self.recovery_timeout - elapsed)

    def can_execute(self) -> bool:
        if self.state is not CircuitBreakerState.OPEN:
            return True
        if self.remaining_timeout() > 0:
            return False
        self._transition(CircuitBreakerState.HALF_OPEN, "recovery timeout elapsed")
        return True

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Await `func()` unless the circuit is open

        Raises:
            CircuitBreakerError: The circuit is open
            Any exception raised by the call itself
        """
        if not self.can_execute():
            raise CircuitBreakerError(self.name, self.remaining_timeout())

        try:
            result = await func()
        except self.expected_exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        self.failure_count = 0
        self.success_count += 1
        if self.state is CircuitBreakerState.HALF_OPEN:
            self._transition(CircuitBreakerState.CLOSED, "trial call succeeded")

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()
        if self.state is CircuitBreakerState.HALF_OPEN:
            self._transition(CircuitBreakerState.OPEN, "trial call failed")
        elif self.failure_count >= self.failure_threshold:
            self._transition(CircuitBreakerState.OPEN, f"{self.failure_count} consecutive failures")

    def get_state(self) -> Dict[str, Any]:
        """Snapshot for diagnostics"""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "failure_threshold": self.failure_threshold,
            "remaining_timeout": self.remaining_timeout(),
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
        }

    def reset(self) -> None:
        self.failure_count = 0
        self.last_failure_time = None
        self._transition(CircuitBreakerState.CLOSED, "manual reset")


class RetryService:
    """
    Registry of named circuit breakers plus retry with backoff.
    """

    def __init__(self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.logger = get_logger(__name__)
        self._sleep = sleep
        self._breakers: Dict[str, CircuitBreaker] = {}

    def create_circuit_breaker(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        expected_exception: tuple = RETRIABLE_ERRORS
    ) -> CircuitBreaker:
        breaker = CircuitBreaker(failure_threshold, recovery_timeout, expected_exception, name=name)
        self._breakers[name] = breaker
        return breaker

    def get_circuit_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(name)

    def get_store_circuit_breaker(self, failure_threshold: int = 5, recovery_timeout: int = 60) -> CircuitBreaker:
        """The breaker shared by every durable write; created on first use"""
        breaker = self._breakers.get("store")
        if breaker is None:
            breaker = self.create_circuit_breaker("store", failure_threshold, recovery_timeout)
        return breaker

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_state() for name, breaker in self._breakers.items()}

    async def retry_with_backoff(
        self,
        func: Callable[[], Awaitable[T]],
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        on_retry: Optional[Callable[[int, Exception], None]] = None
    ) -> T:
        """
        Await an idempotent operation, retrying transient failures

        Args:
            func: Zero-argument callable returning an awaitable; called once per attempt
            max_retries: Retries after the first attempt
            base_delay: Delay before the first retry, in seconds
            max_delay: Upper bound for any single delay, in seconds
            on_retry: Called with (retry number, error) before each retry

        Raises:
            The last transient error once retries are exhausted, or the first
            non-transient error immediately
        """
        attempt = 0
        while True:
            try:
                result = await func()
            except RETRIABLE_ERRORS as e:
                if attempt >= max_retries:
                    self.logger.error(f"Giving up after {attempt} retries: {e}")
                    raise
                delay = exponential_backoff_delay(attempt, base_delay, max_delay)
                attempt += 1
                self.logger.warning(f"Attempt {attempt} failed ({type(e).__name__}); retrying in {delay:.2f}s")
                if on_retry is not None:
                    on_retry(attempt, e)
                await self._sleep(delay)
                continue

            if attempt:
                self.logger.info(f"Succeeded after {attempt} retries")
            return result


# Global retry service instance
_retry_service: Optional[RetryService] = None


def get_retry_service() -> RetryService:
    global _retry_service
    if _retry_service is None:
        _retry_service = RetryService()
    return _retry_service
