"""
Worker pool for blocking calls.
The event loop hands store and assistant calls to these threads.
"""
import asyncio
import functools
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

logger = logging.getLogger(__name__)


class WorkerPool:
    """Thin wrapper over a ThreadPoolExecutor with an awaitable ``run``."""

    def __init__(self, max_workers: int = 8, name: str = "support-worker"):
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._closed = False
        logger.info(f"Worker pool started ({max_workers} threads)")

    @property
    def closed(self) -> bool:
        return self._closed

    async def run(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking callable on the pool and await its result."""
        if self._closed:
            raise RuntimeError("Worker pool is shut down")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args, **kwargs))

    def submit(self, func: Callable[..., Any], *args, **kwargs) -> Future:
        """Fire a blocking callable; the caller collects the result itself."""
        if self._closed:
            raise RuntimeError("Worker pool is shut down")
        return self._executor.submit(func, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work; queued (not started) calls are cancelled."""
        if self._closed:
            return
        self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=True)
        logger.info("✓ Worker pool shut down")


__all__ = ["WorkerPool"]
