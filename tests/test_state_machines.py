"""
Tests for the session state machine and the ticket lifecycle.
"""
from unittest.mock import patch

import pytest

from support_console.orchestrator.errors import (
    ErrorCode,
    InvalidTransition,
    PersistenceFailure,
    ValidationError,
)
from support_console.orchestrator.session_state import SessionStateMachine, can_transition
from support_console.orchestrator.ticket_lifecycle import TicketLifecycle
from support_console.schemas.domain import (
    SenderRole,
    SessionStatus,
    TicketPriority,
    TicketStatus,
)
from support_console.store import SessionLockManager, StoreError


@pytest.fixture
def locks():
    return SessionLockManager(default_timeout=5.0)


@pytest.fixture
def state_machine(store, locks):
    return SessionStateMachine(store, locks, lock_timeout=5.0)


@pytest.fixture
def lifecycle(store, locks):
    return TicketLifecycle(store, locks, lock_timeout=5.0)


@pytest.fixture
def escalated(store):
    """An escalated session with an OPEN ticket."""
    session = store.create_session("user-1", "router-x1")
    store.update_session_status(session.session_id, SessionStatus.ESCALATED, "2")
    ticket = store.create_ticket(session.session_id, "2", TicketPriority.HIGH)
    return session.session_id, ticket


# ===========================
# Session transitions
# ===========================

@pytest.mark.unit
@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (SessionStatus.ACTIVE, SessionStatus.ESCALATED, True),
        (SessionStatus.ACTIVE, SessionStatus.CLOSED, True),
        (SessionStatus.ESCALATED, SessionStatus.CLOSED, True),
        (SessionStatus.ESCALATED, SessionStatus.ACTIVE, False),
        (SessionStatus.CLOSED, SessionStatus.ACTIVE, False),
        (SessionStatus.CLOSED, SessionStatus.ESCALATED, False),
        (SessionStatus.ACTIVE, SessionStatus.ACTIVE, False),
    ],
)
def test_session_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


@pytest.mark.unit
def test_escalate_sets_handler(store, state_machine):
    session = store.create_session("user-1")

    updated = state_machine.transition(session.session_id, SessionStatus.ESCALATED, "2")

    assert updated.status == SessionStatus.ESCALATED
    assert updated.handler_id == "2"
    assert store.get_session(session.session_id).handler_id == "2"


@pytest.mark.unit
def test_escalate_without_handler_is_rejected(store, state_machine):
    session = store.create_session("user-1")

    with pytest.raises(ValidationError):
        state_machine.transition(session.session_id, SessionStatus.ESCALATED)

    assert store.get_session(session.session_id).status == SessionStatus.ACTIVE


@pytest.mark.unit
def test_close_keeps_handler_of_escalated_session(store, state_machine, escalated):
    session_id, _ = escalated

    closed = state_machine.transition(session_id, SessionStatus.CLOSED)

    assert closed.status == SessionStatus.CLOSED
    assert closed.handler_id == "2"


@pytest.mark.unit
def test_closed_session_cannot_move(store, state_machine):
    session = store.create_session("user-1")
    state_machine.transition(session.session_id, SessionStatus.CLOSED)

    with pytest.raises(InvalidTransition) as exc_info:
        state_machine.transition(session.session_id, SessionStatus.ESCALATED, "2")

    assert exc_info.value.error_code == ErrorCode.INVALID_TRANSITION
    loaded = store.get_session(session.session_id)
    assert loaded.status == SessionStatus.CLOSED
    assert loaded.handler_id is None


@pytest.mark.unit
def test_unknown_session(state_machine):
    with pytest.raises(ValidationError):
        state_machine.transition("missing", SessionStatus.CLOSED)


@pytest.mark.unit
def test_revert_escalation(store, state_machine, escalated):
    session_id, _ = escalated

    state_machine.revert_escalation(session_id)

    loaded = store.get_session(session_id)
    assert loaded.status == SessionStatus.ACTIVE
    assert loaded.handler_id is None


# ===========================
# Ticket lifecycle
# ===========================

@pytest.mark.unit
def test_acknowledge(lifecycle, escalated):
    _, ticket = escalated

    updated = lifecycle.acknowledge(ticket.ticket_id, "5")

    assert updated.status == TicketStatus.IN_PROGRESS
    assert updated.handler_id == "5"


@pytest.mark.unit
def test_resolve_appends_audit_message(store, lifecycle, escalated):
    session_id, ticket = escalated

    resolved, message = lifecycle.resolve(ticket.ticket_id, "Dana")

    assert resolved.status == TicketStatus.RESOLVED
    assert resolved.resolved_at is not None
    assert message.role == SenderRole.SYSTEM
    assert message.content == "Ticket resolved by Dana"
    assert store.get_messages(session_id)[-1].content == "Ticket resolved by Dana"


@pytest.mark.unit
def test_resolve_twice_is_invalid(lifecycle, escalated):
    _, ticket = escalated
    lifecycle.resolve(ticket.ticket_id, "Dana")

    with pytest.raises(InvalidTransition):
        lifecycle.resolve(ticket.ticket_id, "Dana")


@pytest.mark.unit
def test_resolve_restores_ticket_when_append_fails(store, lifecycle, escalated):
    session_id, ticket = escalated

    with patch.object(store, "append_message", side_effect=StoreError("disk full")):
        with pytest.raises(PersistenceFailure):
            lifecycle.resolve(ticket.ticket_id, "Dana")

    restored = store.get_ticket(ticket.ticket_id)
    assert restored.status == TicketStatus.OPEN
    assert restored.resolved_at is None
    assert store.get_messages(session_id) == []


@pytest.mark.unit
def test_close_requires_resolved(lifecycle, escalated):
    _, ticket = escalated

    with pytest.raises(InvalidTransition):
        lifecycle.close(ticket.ticket_id)

    lifecycle.resolve(ticket.ticket_id, "Dana")
    closed = lifecycle.close(ticket.ticket_id)
    assert closed.status == TicketStatus.CLOSED
    assert closed.resolved_at is not None


@pytest.mark.unit
def test_reply_moves_open_ticket_in_progress(store, lifecycle, escalated):
    session_id, ticket = escalated

    updated, message = lifecycle.reply(ticket.ticket_id, "2", "Please restart the router.")

    assert updated.status == TicketStatus.IN_PROGRESS
    assert message.role == SenderRole.HANDLER
    assert store.get_messages(session_id)[-1].content == "Please restart the router."


@pytest.mark.unit
def test_reply_rejected_on_closed_ticket(lifecycle, escalated):
    _, ticket = escalated
    lifecycle.resolve(ticket.ticket_id, "Dana")
    lifecycle.close(ticket.ticket_id)

    with pytest.raises(InvalidTransition):
        lifecycle.reply(ticket.ticket_id, "2", "hello?")


@pytest.mark.unit
def test_reply_restores_ticket_when_append_fails(store, lifecycle, escalated):
    _, ticket = escalated

    with patch.object(store, "append_message", side_effect=StoreError("disk full")):
        with pytest.raises(PersistenceFailure):
            lifecycle.reply(ticket.ticket_id, "2", "hello")

    assert store.get_ticket(ticket.ticket_id).status == TicketStatus.OPEN


@pytest.mark.unit
def test_unknown_ticket(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.acknowledge("missing", "2")
