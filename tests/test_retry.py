"""
Tests for the circuit breaker and the persistence retry controller.
"""
import pytest

from support_console.utils.retry import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
    persistence_retrying,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(name="test", failure_threshold=3, recovery_timeout=10.0, clock=clock)


def _fail():
    raise RuntimeError("upstream down")


@pytest.mark.unit
class TestCircuitBreaker:

    def test_starts_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.call(lambda: "ok") == "ok"

    def test_opens_after_threshold(self, breaker):
        for _ in range(3):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            breaker.call(lambda: "ok")
        assert exc_info.value.retry_after == pytest.approx(10.0)

    def test_success_resets_failure_count(self, breaker):
        for _ in range(2):
            with pytest.raises(RuntimeError):
                breaker.call(_fail)
        breaker.call(lambda: "ok")

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_after_recovery_timeout(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()

        clock.now = 10.0
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitState.CLOSED

    def test_failure_in_half_open_reopens(self, breaker, clock):
        for _ in range(3):
            breaker.record_failure()

        clock.now = 10.0
        with pytest.raises(RuntimeError):
            breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN

    def test_reset_and_status(self, breaker):
        for _ in range(3):
            breaker.record_failure()

        breaker.reset()

        status = breaker.get_status()
        assert status["state"] == "closed"
        assert status["failure_count"] == 0
        assert status["name"] == "test"


@pytest.mark.unit
class TestPersistenceRetrying:

    def test_retries_until_success(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("transient")
            return "saved"

        retrying = persistence_retrying(3, 0.0, (ConnectionError,))

        assert retrying(flaky) == "saved"
        assert len(attempts) == 3

    def test_reraises_after_last_attempt(self):
        attempts = []

        def always_fails():
            attempts.append(1)
            raise ConnectionError("still down")

        with pytest.raises(ConnectionError):
            persistence_retrying(2, 0.0, (ConnectionError,))(always_fails)
        assert len(attempts) == 2

    def test_other_errors_not_retried(self):
        attempts = []

        def bad_input():
            attempts.append(1)
            raise ValueError("bad")

        with pytest.raises(ValueError):
            persistence_retrying(5, 0.0, (ConnectionError,))(bad_input)
        assert len(attempts) == 1
