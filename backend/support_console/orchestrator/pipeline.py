"""
Response pipeline: one user turn end-to-end.

Flow:
1. Validate the request and claim the session's turn slot
2. On a worker: persist the USER message, load history and product context
3. Show the message and mark the surface busy
4. On a worker: call the assistant (through the circuit breaker), with a
   timer racing it on the completion channel
5. On the loop: persist and show the reply, or show a SYSTEM error;
   then release the slot and re-enable the surface

Version: 1.0.0
"""
import asyncio
import functools
import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from ..assistant.base import AssistantBackend, AssistantTimeoutError
from ..assistant.product_context import ProductCatalog, build_product_context, empty_catalog
from ..schemas.domain import ChatSession, ImageAttachment, Message, SenderRole, SessionStatus
from ..schemas.requests import SubmitTurnRequest, describe_validation_error
from ..store.conversation_store import ConversationStore
from ..store.locks import SessionLockManager
from ..utils.clock import new_id
from ..utils.retry import CircuitBreaker
from ..utils.workers import WorkerPool
from .channel import ChannelRegistry, CompletionChannel, WorkerOutcome
from .errors import SupportConsoleError, TurnInProgress, ValidationError, translate_error
from .surface import InteractiveSurface

logger = logging.getLogger(__name__)

BACKEND_ERROR_NOTICE = "Error getting response. Please try again."


@dataclass(frozen=True)
class TurnResult:
    """What a completed (or cancelled) turn produced."""
    user_message: Message
    reply: Optional[Message] = None
    cancelled: bool = False


@dataclass(frozen=True)
class _PreparedTurn:
    session: ChatSession
    user_message: Message
    history: List[Message]
    product_context: str


class _BreakerClaim:
    """Lets exactly one of the worker and the timeout timer count a call."""

    def __init__(self):
        self._lock = threading.Lock()
        self._settled = False

    def settle(self) -> bool:
        with self._lock:
            if self._settled:
                return False
            self._settled = True
            return True


class ResponsePipeline:
    """
    Runs user turns without blocking the event loop.

    At most one turn per session is in flight; a second submission is
    rejected with ``TurnInProgress`` until the first has been applied.
    """

    def __init__(
        self,
        store: ConversationStore,
        backend: AssistantBackend,
        pool: WorkerPool,
        locks: SessionLockManager,
        channels: ChannelRegistry,
        surface: InteractiveSurface,
        breaker: Optional[CircuitBreaker] = None,
        product_catalog: ProductCatalog = empty_catalog,
        timeout: float = 60.0,
        lock_timeout: float = 30.0,
    ):
        self.store = store
        self.backend = backend
        self.pool = pool
        self.locks = locks
        self.channels = channels
        self.surface = surface
        self.breaker = breaker or CircuitBreaker(name="assistant")
        self.product_catalog = product_catalog
        self.timeout = timeout
        self.lock_timeout = lock_timeout

        self._in_flight: Dict[str, str] = {}
        self._handed_off: Set[str] = set()
        self._cancel_requested: Set[str] = set()
        self._turn_futures: Dict[str, asyncio.Future] = {}

    # ===========================
    # State queries
    # ===========================

    def is_busy(self, session_id: str) -> bool:
        return session_id in self._in_flight

    # ===========================
    # Blocking steps (worker threads)
    # ===========================

    def _prepare_turn(self, request: SubmitTurnRequest) -> _PreparedTurn:
        with self.locks.hold(request.session_id, self.lock_timeout):
            session = self.store.get_session(request.session_id)
            if session is None:
                raise ValidationError(f"Unknown session: {request.session_id}")
            if session.status == SessionStatus.CLOSED:
                raise ValidationError(f"Session {request.session_id} is closed")

            history = self.store.get_messages(request.session_id)
            image_ref = request.image.reference() if request.image else None
            user_message = self.store.append_message(
                request.session_id, SenderRole.USER, request.text, image_ref
            )

        product = self.product_catalog(session.product_id) if session.product_id else None
        return _PreparedTurn(
            session=session,
            user_message=user_message,
            history=history,
            product_context=build_product_context(product),
        )

    def _call_backend(self, claim: _BreakerClaim, prompt: str, image: Optional[ImageAttachment],
                      history: List[Message], product_context: str) -> str:
        self.breaker.before_call()
        try:
            if image is not None:
                result = self.backend.complete_with_image(
                    prompt,
                    image.data,
                    history,
                    product_context,
                    self.timeout,
                    image.mime_type,
                )
            else:
                result = self.backend.complete(prompt, history, product_context, self.timeout)
        except Exception:
            if claim.settle():
                self.breaker.record_failure()
            raise

        if claim.settle():
            self.breaker.record_success()
        return result

    def _on_timeout(self, channel: CompletionChannel, op_id: str, claim: _BreakerClaim,
                    timeout_error: AssistantTimeoutError) -> None:
        # The call is still running; it is counted here and not again when it ends
        if claim.settle():
            self.breaker.record_failure()
        channel.deliver(op_id, WorkerOutcome(error=timeout_error))

    def _persist_reply(self, session_id: str, text: str) -> Message:
        with self.locks.hold(session_id, self.lock_timeout):
            return self.store.append_message(session_id, SenderRole.ASSISTANT, text)

    # ===========================
    # Turn
    # ===========================

    async def submit_user_turn(
        self,
        session_id: str,
        text: str = "",
        image: Optional[ImageAttachment] = None,
    ) -> TurnResult:
        """
        Run one user turn.

        Args:
            session_id: Session the turn belongs to
            text: User text (may be empty when an image is attached)
            image: Optional attached image (sent to the vision model)

        Returns:
            TurnResult with the persisted USER message and the ASSISTANT reply

        Raises:
            ValidationError: Bad input, unknown or closed session
            TurnInProgress: A turn is already in flight for the session
            BackendUnavailable: Assistant failed; a SYSTEM notice was shown
            PersistenceFailure: Store failure
        """
        try:
            request = SubmitTurnRequest(session_id=session_id, text=text, image=image)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        # Claimed before the first await so a second submission sees it
        if session_id in self._in_flight:
            raise TurnInProgress(session_id)
        op_id = new_id()
        self._in_flight[session_id] = op_id

        busy = False
        handed_off = False
        try:
            try:
                prepared = await self.pool.run(self._prepare_turn, request)
            except SupportConsoleError:
                raise
            except Exception as e:
                raise translate_error(e) from e

            self.surface.show_message(session_id, SenderRole.USER, prepared.user_message.content)
            self.surface.set_busy(session_id, True)
            busy = True

            if op_id in self._cancel_requested:
                logger.info(f"Turn cancelled before dispatch for session {session_id}")
                return TurnResult(user_message=prepared.user_message, cancelled=True)

            future = self._dispatch(op_id, request, prepared)
            handed_off = True
        finally:
            if not handed_off:
                self._release(session_id, op_id, busy)

        return await future

    def _dispatch(self, op_id: str, request: SubmitTurnRequest, prepared: _PreparedTurn) -> asyncio.Future:
        session_id = request.session_id
        loop = asyncio.get_running_loop()
        channel = self.channels.get(session_id)

        timeout_error = AssistantTimeoutError(f"Assistant did not respond within {self.timeout}s")
        claim = _BreakerClaim()
        apply = functools.partial(self._apply_turn, session_id, op_id, prepared.user_message)
        future = channel.expect(op_id, apply)
        self._handed_off.add(op_id)
        self._turn_futures[session_id] = future

        worker = self.pool.submit(
            self._call_backend,
            claim,
            request.text,
            request.image,
            prepared.history,
            prepared.product_context,
        )
        worker.add_done_callback(functools.partial(channel.deliver_future, op_id))

        timer = loop.call_later(self.timeout, self._on_timeout, channel, op_id, claim, timeout_error)
        future.add_done_callback(lambda _: timer.cancel())

        logger.debug(
            f"Dispatched assistant call for session {session_id}",
            extra={"session_id": session_id, "op_id": op_id, "vision": request.image is not None},
        )
        return future

    async def _apply_turn(self, session_id: str, op_id: str, user_message: Message,
                          outcome: WorkerOutcome) -> TurnResult:
        """Runs on the loop via the completion channel."""
        try:
            if outcome.cancelled:
                logger.info(f"Turn result suppressed for session {session_id}")
                return TurnResult(user_message=user_message, cancelled=True)

            if outcome.error is not None:
                error = translate_error(outcome.error)
                logger.warning(
                    f"Assistant turn failed for session {session_id}: {error.message}",
                    extra={"session_id": session_id, "error_code": error.error_code.value},
                )
                self.surface.show_message(session_id, SenderRole.SYSTEM, BACKEND_ERROR_NOTICE)
                raise error

            try:
                reply = await self.pool.run(self._persist_reply, session_id, outcome.value)
            except Exception as e:
                error = translate_error(e)
                logger.error(f"Failed to persist assistant reply for session {session_id}: {e}")
                self.surface.show_message(session_id, SenderRole.SYSTEM, BACKEND_ERROR_NOTICE)
                raise error from e

            self.surface.show_message(session_id, SenderRole.ASSISTANT, reply.content)
            logger.info(f"✓ Turn completed for session {session_id}", extra={"session_id": session_id})
            return TurnResult(user_message=user_message, reply=reply)

        finally:
            self._release(session_id, op_id, busy=True)

    def _release(self, session_id: str, op_id: str, busy: bool) -> None:
        if self._in_flight.get(session_id) == op_id:
            del self._in_flight[session_id]
            self._turn_futures.pop(session_id, None)
        self._handed_off.discard(op_id)
        self._cancel_requested.discard(op_id)
        if busy:
            self.surface.set_busy(session_id, False)

    # ===========================
    # Cancellation
    # ===========================

    def cancel_turn(self, session_id: str) -> bool:
        """
        Suppress the effect of the in-flight turn. The assistant call
        itself keeps running; its result is dropped.

        Returns:
            True if there was a turn to cancel
        """
        op_id = self._in_flight.get(session_id)
        if op_id is None:
            return False

        if op_id in self._handed_off:
            self.channels.get(session_id).cancel(op_id)
        else:
            self._cancel_requested.add(op_id)

        logger.info(f"Cancellation requested for turn in session {session_id}")
        return True

    async def settle(self, session_id: str) -> None:
        """Wait until the session's last dispatched turn has been applied."""
        future = self._turn_futures.pop(session_id, None)
        if future is None or future.done():
            return
        # Outcome already reported to the submitter
        await asyncio.wait([future])


__all__ = ["ResponsePipeline", "TurnResult", "BACKEND_ERROR_NOTICE"]
