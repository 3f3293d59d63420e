"""
Per-session write locks.
All store writes for one session are serialized through its lock.

Version: 1.0.0
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, Optional

logger = logging.getLogger(__name__)


class LockAcquisitionError(Exception):
    """Raised when a session lock cannot be acquired in time."""

    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"Could not acquire lock for session {session_id} within {timeout}s")


class SessionLockManager:
    """
    Hands out one re-entrant lock per session id.

    Locks are only ever taken on worker threads; the event loop never
    waits on them.
    """

    def __init__(self, default_timeout: float = 30.0):
        self.default_timeout = default_timeout
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def get_lock(self, session_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[session_id] = lock
            return lock

    @contextmanager
    def hold(self, session_id: str, timeout: Optional[float] = None) -> Generator[None, None, None]:
        """
        Hold the session's lock for the duration of the block.

        Raises:
            LockAcquisitionError: If the lock is not acquired within the timeout
        """
        timeout = self.default_timeout if timeout is None else timeout
        lock = self.get_lock(session_id)

        if not lock.acquire(timeout=timeout):
            logger.warning(f"Lock acquisition timed out for session {session_id}")
            raise LockAcquisitionError(session_id, timeout)

        try:
            yield
        finally:
            lock.release()

    def discard(self, session_id: str) -> None:
        """Forget a closed session's lock."""
        with self._registry_lock:
            self._locks.pop(session_id, None)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)


__all__ = ["SessionLockManager", "LockAcquisitionError"]
