"""
Chat session state machine.
Every session status write goes through here.

Version: 1.0.0
"""
import logging
from typing import Dict, FrozenSet, Optional

from ..schemas.domain import ChatSession, SessionStatus
from ..store.conversation_store import ConversationStore
from ..store.errors import StoreError
from ..store.locks import SessionLockManager
from .errors import InvalidTransition, PersistenceFailure, ValidationError, translate_error

logger = logging.getLogger(__name__)

SESSION_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.ESCALATED, SessionStatus.CLOSED}),
    SessionStatus.ESCALATED: frozenset({SessionStatus.CLOSED}),
    SessionStatus.CLOSED: frozenset(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in SESSION_TRANSITIONS[current]


class SessionStateMachine:
    """
    Guarded status writes for chat sessions.

    Methods are blocking and run on worker threads under the session's
    lock, so the check and the write cannot interleave with another
    writer for the same session.
    """

    def __init__(self, store: ConversationStore, locks: SessionLockManager, lock_timeout: float = 30.0):
        self.store = store
        self.locks = locks
        self.lock_timeout = lock_timeout

    @staticmethod
    def check(session: ChatSession, target: SessionStatus) -> None:
        """
        Raises:
            InvalidTransition: If ``target`` is not reachable from the current status
        """
        if not can_transition(session.status, target):
            raise InvalidTransition("session", session.status.value, target.value)

    def load(self, session_id: str) -> ChatSession:
        """
        Load a session or fail validation.

        Raises:
            ValidationError: Unknown session
            PersistenceFailure: Store failure
        """
        try:
            session = self.store.get_session(session_id)
        except StoreError as e:
            raise translate_error(e) from e
        if session is None:
            raise ValidationError(f"Unknown session: {session_id}")
        return session

    def transition(
        self,
        session_id: str,
        target: SessionStatus,
        handler_id: Optional[str] = None,
    ) -> ChatSession:
        """
        Move a session to ``target``; status and handler are written together.

        ESCALATED requires ``handler_id``. CLOSED keeps the handler of an
        escalated session.

        Args:
            session_id: Session to move
            target: Target status
            handler_id: Handler assigned on escalation

        Returns:
            The updated session

        Raises:
            ValidationError: Unknown session or missing handler
            InvalidTransition: Illegal move; nothing written
            PersistenceFailure: Store or lock failure; nothing written
        """
        try:
            with self.locks.hold(session_id, self.lock_timeout):
                session = self.load(session_id)
                self.check(session, target)

                if target == SessionStatus.ESCALATED:
                    if not handler_id:
                        raise ValidationError("Escalation requires an assigned handler")
                    new_handler = handler_id
                else:
                    new_handler = session.handler_id

                if not self.store.update_session_status(session_id, target, new_handler):
                    raise ValidationError(f"Unknown session: {session_id}")

                logger.info(
                    f"Session {session_id}: {session.status.value} -> {target.value}",
                    extra={"session_id": session_id, "handler_id": new_handler},
                )
                return session.model_copy(update={"status": target, "handler_id": new_handler})

        except (InvalidTransition, ValidationError, PersistenceFailure):
            raise
        except Exception as e:
            raise translate_error(e) from e

    def revert_escalation(self, session_id: str) -> None:
        """
        Compensating step: put an ESCALATED session back to ACTIVE with no handler.

        Only used when ticket creation fails after the status write.

        Raises:
            PersistenceFailure: If the revert itself cannot be written
        """
        try:
            with self.locks.hold(session_id, self.lock_timeout):
                if not self.store.update_session_status(session_id, SessionStatus.ACTIVE, None):
                    raise PersistenceFailure(f"Session {session_id} vanished during rollback")
        except PersistenceFailure:
            raise
        except Exception as e:
            raise translate_error(e) from e

        logger.warning(
            f"Session {session_id} rolled back to ACTIVE",
            extra={"session_id": session_id},
        )


__all__ = ["SessionStateMachine", "SESSION_TRANSITIONS", "can_transition"]
