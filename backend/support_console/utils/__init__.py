"""
Utility modules.
"""
from .clock import new_id, utcnow
from .retry import CircuitBreaker, CircuitBreakerOpenError, CircuitState, persistence_retrying
from .workers import WorkerPool

__all__ = [
    "new_id",
    "utcnow",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "persistence_retrying",
    "WorkerPool",
]
