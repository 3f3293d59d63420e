"""
Completion channel: hands worker results back to the event loop.

Worker threads never touch session state. They deliver an outcome to
the session's channel; a single consumer task applies outcomes one at a
time, in delivery order, on the loop that owns the console.

Version: 1.0.0
"""
import asyncio
import logging
from concurrent.futures import CancelledError as FutureCancelledError
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerOutcome:
    """Result of one piece of off-loop work."""
    value: Any = None
    error: Optional[BaseException] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.cancelled

    @classmethod
    def from_future(cls, future: Future) -> "WorkerOutcome":
        try:
            return cls(value=future.result())
        except FutureCancelledError:
            return cls(cancelled=True)
        except Exception as e:
            return cls(error=e)


ApplyStep = Callable[[WorkerOutcome], Awaitable[Any]]


class _Pending:
    __slots__ = ("apply", "future", "outcome")

    def __init__(self, apply: ApplyStep, future: asyncio.Future):
        self.apply = apply
        self.future = future
        self.outcome: Optional[WorkerOutcome] = None

    @property
    def delivered(self) -> bool:
        return self.outcome is not None


class CompletionChannel:
    """
    Single-consumer channel for one session.

    - ``expect`` registers an operation and returns a future for its applied result.
    - ``deliver`` may be called from any thread; the first delivery for an
      operation wins and later ones are dropped.
    - The consumer awaits each apply step before taking the next outcome.
    """

    def __init__(self, session_id: str, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.session_id = session_id
        self._loop = loop or asyncio.get_running_loop()
        self._queue: "asyncio.Queue" = asyncio.Queue()
        self._pending: Dict[str, _Pending] = {}
        self._consumer: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def has_pending(self, op_id: str) -> bool:
        return op_id in self._pending

    def expect(self, op_id: str, apply: ApplyStep) -> asyncio.Future:
        """
        Register an operation. Must be called on the owning loop.

        Args:
            op_id: Operation identifier, unique per channel
            apply: Coroutine function run on the loop with the outcome

        Returns:
            Future resolved (exactly once) with the apply step's result or error
        """
        if self._closed:
            raise RuntimeError(f"Channel for session {self.session_id} is closed")
        if op_id in self._pending:
            raise ValueError(f"Operation {op_id} already registered")

        future = self._loop.create_future()
        self._pending[op_id] = _Pending(apply, future)

        if self._consumer is None or self._consumer.done():
            self._consumer = self._loop.create_task(
                self._consume(), name=f"completion-channel-{self.session_id}"
            )
        return future

    def deliver(self, op_id: str, outcome: WorkerOutcome) -> None:
        """Hand an outcome to the loop. Thread-safe."""
        try:
            self._loop.call_soon_threadsafe(self._accept, op_id, outcome)
        except RuntimeError:
            logger.debug(f"Dropped outcome for {op_id}: event loop is closed")

    def deliver_future(self, op_id: str, future: Future) -> None:
        """``add_done_callback`` adapter for worker futures."""
        self.deliver(op_id, WorkerOutcome.from_future(future))

    def cancel(self, op_id: str) -> None:
        """Suppress the effect of a pending operation's real result."""
        self.deliver(op_id, WorkerOutcome(cancelled=True))

    def _accept(self, op_id: str, outcome: WorkerOutcome) -> None:
        pending = self._pending.get(op_id)
        if pending is None or pending.delivered:
            logger.debug(
                f"Dropped late outcome for operation {op_id}",
                extra={"session_id": self.session_id},
            )
            return
        pending.outcome = outcome
        self._queue.put_nowait(op_id)

    async def _consume(self) -> None:
        while True:
            op_id = await self._queue.get()
            if op_id is None:
                break

            pending = self._pending.pop(op_id, None)
            if pending is None:
                continue

            await self._apply(op_id, pending)

    async def _apply(self, op_id: str, pending: _Pending) -> None:
        try:
            result = await pending.apply(pending.outcome)
        except asyncio.CancelledError:
            if not pending.future.done():
                pending.future.cancel()
            raise
        except Exception as e:
            if not pending.future.done():
                pending.future.set_exception(e)
        else:
            if not pending.future.done():
                pending.future.set_result(result)

    async def close(self) -> None:
        """Cancel undelivered operations, drain, then stop the consumer."""
        if self._closed:
            return
        for op_id, pending in list(self._pending.items()):
            if not pending.delivered:
                self._accept(op_id, WorkerOutcome(cancelled=True))
        self._closed = True
        self._queue.put_nowait(None)
        if self._consumer is not None:
            await self._consumer


class ChannelRegistry:
    """One completion channel per session, created on first use."""

    def __init__(self):
        self._channels: Dict[str, CompletionChannel] = {}

    def get(self, session_id: str) -> CompletionChannel:
        channel = self._channels.get(session_id)
        if channel is None or channel.closed:
            channel = CompletionChannel(session_id)
            self._channels[session_id] = channel
        return channel

    async def discard(self, session_id: str) -> None:
        channel = self._channels.pop(session_id, None)
        if channel is not None:
            await channel.close()

    async def close_all(self) -> None:
        for session_id in list(self._channels):
            await self.discard(session_id)

    def __len__(self) -> int:
        return len(self._channels)


__all__ = ["WorkerOutcome", "CompletionChannel", "ChannelRegistry", "ApplyStep"]
