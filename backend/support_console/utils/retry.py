"""
Resilience utilities for store and assistant calls.
Circuit breaker for the assistant backend and tenacity retry for store writes.

Version: 1.0.0
"""
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker state."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failures exceeded threshold, rejecting calls
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit breaker is open."""

    def __init__(self, name: str, retry_after: float):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN (retry in {retry_after:.1f}s)")


class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Calls run on worker threads, so state changes happen under a lock.
    Failures can also be recorded from outside ``call`` (e.g. when the
    caller gave up waiting on a call that has not returned yet).

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Too many failures, requests are rejected
    - HALF_OPEN: Testing if service recovered
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Name used in logs and errors
            failure_threshold: Consecutive failures before opening the circuit
            recovery_timeout: Seconds to wait before attempting recovery
            success_threshold: Successes needed to close circuit from half-open
            clock: Monotonic time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    def before_call(self) -> None:
        """
        Admit or reject a call.

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        with self._lock:
            if self._state != CircuitState.OPEN:
                return

            elapsed = self._clock() - (self._opened_at or 0.0)
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._success_count = 0
                logger.info(f"Circuit breaker '{self.name}' entering HALF_OPEN state")
                return

            raise CircuitBreakerOpenError(self.name, self.recovery_timeout - elapsed)

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Execute function through circuit breaker.

        Args:
            func: Function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        self.before_call()

        try:
            result = func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def record_success(self) -> None:
        with self._lock:
            self._failure_count = 0

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._state = CircuitState.CLOSED
                    self._success_count = 0
                    self._opened_at = None
                    logger.info(f"Circuit breaker '{self.name}' CLOSED after successful recovery")

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            self._success_count = 0

            if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        f"Circuit breaker '{self.name}' OPENED after "
                        f"{self._failure_count} failures"
                    )
                self._state = CircuitState.OPEN
                self._opened_at = self._clock()

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._opened_at = None
        logger.info(f"Circuit breaker '{self.name}' manually reset to CLOSED")

    def get_status(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "failure_threshold": self.failure_threshold,
            }


def persistence_retrying(
    max_attempts: int,
    wait_seconds: float,
    retry_on: Tuple[Type[BaseException], ...],
) -> Retrying:
    """
    Tenacity controller for retrying a blocking store write.

    Args:
        max_attempts: Total attempts including the first
        wait_seconds: Initial wait between attempts (doubles, capped at 2s)
        retry_on: Exception types that trigger another attempt

    Returns:
        Configured ``Retrying`` (iterate it or call it with a function)
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_seconds, min=wait_seconds, max=max(wait_seconds, 2.0)),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


__all__ = [
    "CircuitState",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "persistence_retrying",
]
