"""
Tests for the circuit breaker and retry logic around store calls
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from infrastructure.resilience.retry_service import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitBreakerState,
    RetryService,
    exponential_backoff_delay,
    get_retry_service,
    is_retriable,
)
from infrastructure.store.base import DocumentNotFoundError, StoreUnavailableError


class FakeTime:
    """Manually advanced wall clock"""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class TestExponentialBackoff:
    """Test backoff delay calculation"""

    def test_delay_grows_and_is_capped(self):
        first = exponential_backoff_delay(0, base_delay=1.0, max_delay=10.0)
        third = exponential_backoff_delay(2, base_delay=1.0, max_delay=10.0)
        capped = exponential_backoff_delay(10, base_delay=1.0, max_delay=10.0)

        assert 1.0 <= first <= 1.1
        assert 4.0 <= third <= 4.4
        assert 10.0 <= capped <= 11.0


class TestCircuitBreaker:
    """Test circuit breaker state transitions"""

    def setup_method(self):
        self.time = FakeTime()
        self.breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=5, name="test", clock=self.time)

    def _fail(self):
        failing = AsyncMock(side_effect=StoreUnavailableError("down"))
        with pytest.raises(StoreUnavailableError):
            asyncio.run(self.breaker.execute(failing))

    def test_successful_call_passes_through(self):
        result = asyncio.run(self.breaker.execute(AsyncMock(return_value="ok")))

        assert result == "ok"
        assert self.breaker.state == CircuitBreakerState.CLOSED
        assert self.breaker.success_count == 1

    def test_opens_after_threshold(self):
        for _ in range(3):
            self._fail()

        assert self.breaker.state == CircuitBreakerState.OPEN

        blocked = AsyncMock(return_value="ok")
        with pytest.raises(CircuitBreakerError):
            asyncio.run(self.breaker.execute(blocked))
        blocked.assert_not_called()

    def test_open_error_reports_retry_after(self):
        for _ in range(3):
            self._fail()
        self.time.advance(1)

        with pytest.raises(CircuitBreakerError) as exc_info:
            asyncio.run(self.breaker.execute(AsyncMock()))

        assert exc_info.value.name == "test"
        assert exc_info.value.retry_after == pytest.approx(4)

    def test_non_transient_errors_do_not_count(self):
        missing = AsyncMock(side_effect=DocumentNotFoundError("gone"))
        for _ in range(5):
            with pytest.raises(DocumentNotFoundError):
                asyncio.run(self.breaker.execute(missing))

        assert self.breaker.state == CircuitBreakerState.CLOSED
        assert self.breaker.failure_count == 0

    def test_half_open_recovers_on_success(self):
        for _ in range(3):
            self._fail()

        self.time.advance(6)
        result = asyncio.run(self.breaker.execute(AsyncMock(return_value="back")))

        assert result == "back"
        assert self.breaker.state == CircuitBreakerState.CLOSED

    def test_half_open_reopens_on_failure(self):
        for _ in range(3):
            self._fail()

        self.time.advance(6)
        self._fail()

        assert self.breaker.state == CircuitBreakerState.OPEN

    def test_get_state_reports_remaining_timeout(self):
        for _ in range(3):
            self._fail()
        self.time.advance(2)

        state = self.breaker.get_state()

        assert state["state"] == "open"
        assert state["failure_count"] == 3
        assert state["remaining_timeout"] == pytest.approx(3)

    def test_reset(self):
        for _ in range(3):
            self._fail()

        self.breaker.reset()

        assert self.breaker.state == CircuitBreakerState.CLOSED
        assert self.breaker.failure_count == 0


class TestRetryService:
    """Test retry with backoff"""

    def setup_method(self):
        self.sleep = AsyncMock()
        self.service = RetryService(sleep=self.sleep)

    def test_retries_transient_errors_until_success(self):
        func = AsyncMock(side_effect=[StoreUnavailableError("1"), ConnectionError("2"), "done"])
        on_retry = Mock()

        result = asyncio.run(self.service.retry_with_backoff(func, max_retries=3, on_retry=on_retry))

        assert result == "done"
        assert func.await_count == 3
        assert self.sleep.await_count == 2
        assert [call.args[0] for call in on_retry.call_args_list] == [1, 2]

    def test_gives_up_after_max_retries(self):
        func = AsyncMock(side_effect=StoreUnavailableError("down"))

        with pytest.raises(StoreUnavailableError):
            asyncio.run(self.service.retry_with_backoff(func, max_retries=2))

        assert func.await_count == 3

    def test_does_not_retry_permanent_errors(self):
        func = AsyncMock(side_effect=ValueError("bad input"))

        with pytest.raises(ValueError):
            asyncio.run(self.service.retry_with_backoff(func, max_retries=3))

        assert func.await_count == 1
        self.sleep.assert_not_called()

    def test_store_circuit_breaker_is_shared(self):
        breaker = self.service.get_store_circuit_breaker(failure_threshold=2)

        assert self.service.get_store_circuit_breaker() is breaker
        assert self.service.get_circuit_breaker("store") is breaker
        assert breaker.failure_threshold == 2

    def test_all_states_lists_every_breaker(self):
        self.service.get_store_circuit_breaker()
        self.service.create_circuit_breaker("presence", failure_threshold=1)

        states = self.service.get_all_states()

        assert set(states) == {"store", "presence"}
        assert states["presence"]["failure_threshold"] == 1

    def test_retriable_classification(self):
        assert is_retriable(StoreUnavailableError("down"))
        assert is_retriable(asyncio.TimeoutError())
        assert not is_retriable(DocumentNotFoundError("gone"))

    def test_global_instance(self):
        assert get_retry_service() is get_retry_service()


if __name__ == "__main__":
    pytest.main([__file__])
