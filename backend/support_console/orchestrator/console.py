"""
Support console: the orchestrator exposed to the presentation layer.
Wires the response pipeline, escalation coordinator and ticket lifecycle
around one store, one assistant backend and one worker pool.

Version: 1.0.0
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..assistant.base import AssistantBackend
from ..assistant.product_context import ProductCatalog, empty_catalog
from ..config import EscalationSettings, Settings
from ..schemas.domain import ChatSession, ImageAttachment, Message, SenderRole, SessionStatus
from ..schemas.requests import HandlerReplyRequest, StartSessionRequest, describe_validation_error
from ..store.conversation_store import ConversationStore
from ..store.locks import SessionLockManager
from ..utils.retry import CircuitBreaker
from ..utils.workers import WorkerPool
from .channel import ChannelRegistry
from .errors import SupportConsoleError, ValidationError, translate_error
from .escalation import EscalationCoordinator
from .handlers import HandlerSelector, create_handler_selector
from .pipeline import ResponsePipeline
from .priority import PriorityClassifier
from .results import OperationResult, Outcome
from .session_state import SessionStateMachine
from .surface import InteractiveSurface, LoggingSurface
from .ticket_lifecycle import TicketLifecycle

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = (
    "Hello! I'm your AI support assistant. I'm here to help you with {product}. "
    "How can I assist you today?"
)
CONTINUING_NOTICE = "Continuing your previous conversation. You can keep chatting!"
GOODBYE_NOTICE = "Chat session ended. Thank you for using {app_name} support!"


class SupportConsole:
    """
    Support session orchestrator.

    Every public operation is a coroutine meant to be awaited on the loop
    that owns the console. Blocking work goes to the worker pool, results
    come back through per-session completion channels, and errors are
    returned inside an ``OperationResult`` instead of being raised.
    """

    def __init__(
        self,
        store: ConversationStore,
        backend: AssistantBackend,
        settings: Optional[Settings] = None,
        handler_selector: Optional[HandlerSelector] = None,
        surface: Optional[InteractiveSurface] = None,
        product_catalog: ProductCatalog = empty_catalog,
        escalation_settings: Optional[EscalationSettings] = None,
        pool: Optional[WorkerPool] = None,
    ):
        """
        Initialize the console.

        Args:
            store: Conversation store
            backend: Assistant backend
            settings: Application settings (defaults when omitted)
            handler_selector: Escalation handler policy (from settings when omitted)
            surface: Presentation observer (logging-only when omitted)
            product_catalog: Product lookup for the assistant prompt
            escalation_settings: Classifier vocabulary (defaults when omitted)
            pool: Worker pool (created and owned by the console when omitted)
        """
        self.settings = settings or Settings()
        self.store = store
        self.backend = backend
        self.surface = surface or LoggingSurface()
        self.product_catalog = product_catalog
        self.handler_selector = handler_selector or create_handler_selector(self.settings)

        self._owns_pool = pool is None
        self.pool = pool or WorkerPool(self.settings.worker_pool_size)
        self.locks = SessionLockManager(self.settings.session_lock_timeout_seconds)
        self.channels = ChannelRegistry()
        self.breaker = CircuitBreaker(
            name="assistant",
            failure_threshold=self.settings.backend_failure_threshold,
            recovery_timeout=self.settings.backend_recovery_seconds,
        )

        lock_timeout = self.settings.session_lock_timeout_seconds
        self.session_state = SessionStateMachine(store, self.locks, lock_timeout)
        self.tickets = TicketLifecycle(store, self.locks, lock_timeout)
        self.pipeline = ResponsePipeline(
            store=store,
            backend=backend,
            pool=self.pool,
            locks=self.locks,
            channels=self.channels,
            surface=self.surface,
            breaker=self.breaker,
            product_catalog=product_catalog,
            timeout=self.settings.assistant_timeout_seconds,
            lock_timeout=lock_timeout,
        )
        self.escalation = EscalationCoordinator(
            store=store,
            locks=self.locks,
            state_machine=self.session_state,
            classifier=PriorityClassifier.from_settings(escalation_settings),
            handler_selector=self.handler_selector,
            pool=self.pool,
            channels=self.channels,
            surface=self.surface,
            max_attempts=self.settings.ticket_create_max_attempts,
            retry_wait=self.settings.ticket_create_retry_wait_seconds,
            lock_timeout=lock_timeout,
        )
        self._closed = False

        if not backend.is_ready:
            logger.warning("Assistant backend is not ready; turns will fail until it is configured")

        logger.info(
            f"SupportConsole initialized (store={type(store).__name__}, "
            f"backend={type(backend).__name__}, workers={self.pool.max_workers})"
        )

    # ===========================
    # Helpers
    # ===========================

    async def _guard(self, operation: str, call: Callable[[], Awaitable[OperationResult]],
                     **context: Any) -> OperationResult:
        """Run an operation and turn any error into a failed result."""
        if self._closed:
            return OperationResult.failed(ValidationError("Console is closed"))
        try:
            return await call()
        except SupportConsoleError as e:
            logger.warning(
                f"{operation} failed: {e.message}",
                extra={**context, "error_code": e.error_code.value},
            )
            return OperationResult.failed(e)
        except PydanticValidationError as e:
            return OperationResult.failed(ValidationError(describe_validation_error(e)))
        except Exception as e:
            error = translate_error(e)
            logger.error(f"{operation} failed unexpectedly: {e}", exc_info=True, extra=context)
            return OperationResult.failed(error)

    def _product_name(self, product_id: Optional[str]) -> str:
        product = self.product_catalog(product_id) if product_id else None
        return product.name if product else "your product"

    def _load_session(self, session_id: str) -> ChatSession:
        return self.session_state.load(session_id)

    def _append(self, session_id: str, role: SenderRole, text: str) -> Message:
        with self.locks.hold(session_id, self.settings.session_lock_timeout_seconds):
            return self.store.append_message(session_id, role, text)

    async def _run(self, func, *args):
        try:
            return await self.pool.run(func, *args)
        except SupportConsoleError:
            raise
        except Exception as e:
            raise translate_error(e) from e

    # ===========================
    # Sessions
    # ===========================

    async def start_session(self, user_id: str, product_id: Optional[str] = None) -> OperationResult:
        """
        Create an ACTIVE session and greet the user.

        Returns:
            OperationResult with ``session`` and ``welcome`` (the persisted message)
        """
        async def call() -> OperationResult:
            request = StartSessionRequest(user_id=user_id, product_id=product_id)

            def create():
                session = self.store.create_session(request.user_id, request.product_id)
                welcome = WELCOME_MESSAGE.format(product=self._product_name(session.product_id))
                message = self._append(session.session_id, SenderRole.ASSISTANT, welcome)
                return session, message

            session, welcome = await self._run(create)
            self.surface.show_message(session.session_id, SenderRole.ASSISTANT, welcome.content)
            logger.info(
                f"✓ Session {session.session_id} started for user {user_id}",
                extra={"session_id": session.session_id},
            )
            return OperationResult.ok(session=session, welcome=welcome)

        return await self._guard("start_session", call, user_id=user_id)

    async def resume_session(self, session_id: str) -> OperationResult:
        """
        Reopen an existing session for display.

        Returns:
            OperationResult with ``session`` and ``transcript``
        """
        async def call() -> OperationResult:
            def load():
                session = self._load_session(session_id)
                if session.status == SessionStatus.CLOSED:
                    raise ValidationError(f"Session {session_id} is closed")
                transcript = self.store.get_messages(session_id)
                if not transcript:
                    welcome = WELCOME_MESSAGE.format(product=self._product_name(session.product_id))
                    transcript = [self._append(session_id, SenderRole.ASSISTANT, welcome)]
                    return session, transcript, True
                return session, transcript, False

            session, transcript, fresh = await self._run(load)
            for message in transcript:
                self.surface.show_message(session_id, message.role, message.content)
            if not fresh:
                self.surface.notify(session_id, CONTINUING_NOTICE)
            return OperationResult.ok(session=session, transcript=transcript)

        return await self._guard("resume_session", call, session_id=session_id)

    async def submit_user_turn(
        self,
        session_id: str,
        text: str = "",
        image: Optional[ImageAttachment] = None,
    ) -> OperationResult:
        """
        Submit a user turn and wait for the assistant's reply.

        Returns:
            OperationResult with ``user_message`` and ``reply``; CANCELLED
            outcome when the turn was cancelled or the session ended
        """
        async def call() -> OperationResult:
            result = await self.pipeline.submit_user_turn(session_id, text, image)
            if result.cancelled:
                return OperationResult.ok(Outcome.CANCELLED, user_message=result.user_message)
            return OperationResult.ok(user_message=result.user_message, reply=result.reply)

        return await self._guard("submit_user_turn", call, session_id=session_id)

    async def cancel_turn(self, session_id: str) -> OperationResult:
        """Suppress the effect of the in-flight turn, if any."""
        async def call() -> OperationResult:
            cancelled = self.pipeline.cancel_turn(session_id)
            return OperationResult.ok(cancelled=cancelled)

        return await self._guard("cancel_turn", call, session_id=session_id)

    async def end_session(self, session_id: str) -> OperationResult:
        """
        Close a session (ACTIVE or ESCALATED -> CLOSED).

        Any in-flight turn is cancelled and settled first so nothing is
        written to the transcript after the close.
        """
        async def call() -> OperationResult:
            if self.pipeline.cancel_turn(session_id):
                await self.pipeline.settle(session_id)

            session = await self._run(self.session_state.transition, session_id, SessionStatus.CLOSED)
            self.surface.notify(session_id, GOODBYE_NOTICE.format(app_name=self.settings.app_name))
            await self.channels.discard(session_id)
            self.locks.discard(session_id)
            logger.info(f"✓ Session {session_id} closed", extra={"session_id": session_id})
            return OperationResult.ok(session=session)

        return await self._guard("end_session", call, session_id=session_id)

    # ===========================
    # Escalation
    # ===========================

    async def escalate(
        self,
        session_id: str,
        conversation_history: Optional[List[Any]] = None,
    ) -> OperationResult:
        """
        Hand the session to a human handler.

        Returns:
            OperationResult with ``ticket_id``, ``priority`` and ``ticket``;
            ALREADY_ESCALATED outcome (still a success) on repeat calls
        """
        async def call() -> OperationResult:
            receipt = await self.escalation.escalate(session_id, conversation_history)
            outcome = Outcome.ALREADY_ESCALATED if receipt.already_escalated else Outcome.OK
            return OperationResult.ok(
                outcome,
                ticket_id=receipt.ticket_id,
                priority=receipt.priority,
                ticket=receipt.ticket,
            )

        return await self._guard("escalate", call, session_id=session_id)

    # ===========================
    # Tickets
    # ===========================

    async def acknowledge_ticket(self, ticket_id: str, handler_id: str) -> OperationResult:
        """OPEN -> IN_PROGRESS."""
        async def call() -> OperationResult:
            ticket = await self._run(self.tickets.acknowledge, ticket_id, handler_id)
            return OperationResult.ok(ticket=ticket)

        return await self._guard("acknowledge_ticket", call, ticket_id=ticket_id)

    async def handler_reply(self, ticket_id: str, handler_id: str, text: str) -> OperationResult:
        """Post a handler message into the ticket's session."""
        async def call() -> OperationResult:
            request = HandlerReplyRequest(ticket_id=ticket_id, handler_id=handler_id, text=text)
            ticket, message = await self._run(
                self.tickets.reply, request.ticket_id, request.handler_id, request.text
            )
            self.surface.show_message(ticket.session_id, SenderRole.HANDLER, message.content)
            return OperationResult.ok(ticket=ticket, message=message)

        return await self._guard("handler_reply", call, ticket_id=ticket_id)

    async def resolve_ticket(self, ticket_id: str, resolved_by: str) -> OperationResult:
        """
        Resolve a ticket; appends the SYSTEM audit message to its session.

        Returns:
            OperationResult with ``ticket`` and ``message``
        """
        async def call() -> OperationResult:
            if not resolved_by or not resolved_by.strip():
                raise ValidationError("resolved_by cannot be empty")
            ticket, message = await self._run(self.tickets.resolve, ticket_id, resolved_by.strip())
            self.surface.show_message(ticket.session_id, SenderRole.SYSTEM, message.content)
            return OperationResult.ok(ticket=ticket, message=message)

        return await self._guard("resolve_ticket", call, ticket_id=ticket_id)

    async def close_ticket(self, ticket_id: str) -> OperationResult:
        """RESOLVED -> CLOSED."""
        async def call() -> OperationResult:
            ticket = await self._run(self.tickets.close, ticket_id)
            return OperationResult.ok(ticket=ticket)

        return await self._guard("close_ticket", call, ticket_id=ticket_id)

    # ===========================
    # Reads
    # ===========================

    async def get_transcript(self, session_id: str) -> OperationResult:
        async def call() -> OperationResult:
            def load():
                self._load_session(session_id)
                return self.store.get_messages(session_id)

            return OperationResult.ok(transcript=await self._run(load))

        return await self._guard("get_transcript", call, session_id=session_id)

    async def get_ticket_for_session(self, session_id: str) -> OperationResult:
        async def call() -> OperationResult:
            ticket = await self._run(self.store.get_ticket_by_session, session_id)
            return OperationResult.ok(ticket=ticket)

        return await self._guard("get_ticket_for_session", call, session_id=session_id)

    def is_busy(self, session_id: str) -> bool:
        """True while a turn for the session waits on the assistant."""
        return self.pipeline.is_busy(session_id)

    async def health_check(self) -> Dict[str, Any]:
        store_health = await self.pool.run(self.store.health_check)
        return {
            "store": store_health,
            "backend_ready": self.backend.is_ready,
            "circuit_breaker": self.breaker.get_status(),
            "channels": len(self.channels),
        }

    # ===========================
    # Lifecycle
    # ===========================

    async def close(self) -> None:
        """Drain channels and release resources."""
        if self._closed:
            return
        logger.info("Closing support console...")
        self._closed = True

        await self.channels.close_all()

        if self._owns_pool:
            self.pool.shutdown(wait=False)

        logger.info("✓ Support console closed")

    async def __aenter__(self) -> "SupportConsole":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_support_console(
    settings: Optional[Settings] = None,
    store: Optional[ConversationStore] = None,
    backend: Optional[AssistantBackend] = None,
    **kwargs: Any,
) -> SupportConsole:
    """
    Build a console from settings, creating the SQL store and OpenAI
    backend when they are not supplied.

    Args:
        settings: Application settings (``get_settings()`` when omitted)
        store: Conversation store
        backend: Assistant backend
        **kwargs: Passed to ``SupportConsole``

    Returns:
        SupportConsole
    """
    from ..assistant.openai_backend import OpenAIAssistantBackend
    from ..config import get_settings
    from ..store import create_conversation_store

    settings = settings or get_settings()
    if store is None:
        store = create_conversation_store("sql", settings=settings)
    if backend is None:
        backend = OpenAIAssistantBackend.from_settings(settings)

    return SupportConsole(store, backend, settings=settings, **kwargs)


__all__ = [
    "SupportConsole",
    "create_support_console",
    "WELCOME_MESSAGE",
    "CONTINUING_NOTICE",
    "GOODBYE_NOTICE",
]
