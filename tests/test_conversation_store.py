"""
Tests for ConversationStore implementations.
Every test runs against both the in-memory and the SQL store.
"""
import threading

import pytest

from support_console.schemas.domain import (
    SenderRole,
    SessionStatus,
    TicketPriority,
    TicketStatus,
)
from support_console.store import (
    DuplicateTicketError,
    InMemoryConversationStore,
    RecordNotFoundError,
    SQLConversationStore,
    create_conversation_store,
)


# ===========================
# Sessions
# ===========================

@pytest.mark.unit
def test_create_and_get_session(store):
    session = store.create_session("user-1", "router-x1")

    loaded = store.get_session(session.session_id)
    assert loaded is not None
    assert loaded.user_id == "user-1"
    assert loaded.product_id == "router-x1"
    assert loaded.status == SessionStatus.ACTIVE
    assert loaded.handler_id is None


@pytest.mark.unit
def test_get_unknown_session(store):
    assert store.get_session("missing") is None


@pytest.mark.unit
def test_update_session_status_sets_handler(store):
    session = store.create_session("user-1")

    assert store.update_session_status(session.session_id, SessionStatus.ESCALATED, "2")
    loaded = store.get_session(session.session_id)
    assert loaded.status == SessionStatus.ESCALATED
    assert loaded.handler_id == "2"

    assert store.update_session_status(session.session_id, SessionStatus.ACTIVE, None)
    loaded = store.get_session(session.session_id)
    assert loaded.status == SessionStatus.ACTIVE
    assert loaded.handler_id is None


@pytest.mark.unit
def test_update_unknown_session(store):
    assert store.update_session_status("missing", SessionStatus.CLOSED) is False


@pytest.mark.unit
def test_list_sessions_by_user(store):
    first = store.create_session("user-1")
    second = store.create_session("user-1")
    store.create_session("user-2")

    sessions = store.list_sessions_by_user("user-1")
    assert {s.session_id for s in sessions} == {first.session_id, second.session_id}


# ===========================
# Messages
# ===========================

@pytest.mark.unit
def test_messages_keep_append_order(store):
    session = store.create_session("user-1")
    sid = session.session_id

    store.append_message(sid, SenderRole.USER, "hello")
    store.append_message(sid, SenderRole.ASSISTANT, "hi there")
    store.append_message(sid, SenderRole.USER, "", image_ref="photo.png#sha256:abc")

    messages = store.get_messages(sid)
    assert [m.role for m in messages] == [SenderRole.USER, SenderRole.ASSISTANT, SenderRole.USER]
    assert [m.sequence for m in messages] == [0, 1, 2]
    assert messages[2].image_ref == "photo.png#sha256:abc"


@pytest.mark.unit
def test_append_to_unknown_session(store):
    with pytest.raises(RecordNotFoundError):
        store.append_message("missing", SenderRole.USER, "hello")


# ===========================
# Tickets
# ===========================

@pytest.mark.unit
def test_create_ticket_and_lookup(store):
    session = store.create_session("user-1")

    ticket = store.create_ticket(session.session_id, "2", TicketPriority.HIGH)

    assert ticket.status == TicketStatus.OPEN
    assert store.get_ticket(ticket.ticket_id).priority == TicketPriority.HIGH
    assert store.get_ticket_by_session(session.session_id).ticket_id == ticket.ticket_id


@pytest.mark.unit
def test_second_ticket_for_session_is_rejected(store):
    session = store.create_session("user-1")
    first = store.create_ticket(session.session_id, "2", TicketPriority.MEDIUM)

    with pytest.raises(DuplicateTicketError) as exc_info:
        store.create_ticket(session.session_id, "3", TicketPriority.HIGH)

    assert exc_info.value.existing_ticket_id == first.ticket_id
    assert len(store.list_tickets()) == 1


@pytest.mark.unit
def test_ticket_for_unknown_session(store):
    with pytest.raises(RecordNotFoundError):
        store.create_ticket("missing", "2", TicketPriority.MEDIUM)


@pytest.mark.unit
def test_resolved_at_follows_status(store):
    session = store.create_session("user-1")
    ticket = store.create_ticket(session.session_id, "2", TicketPriority.MEDIUM)

    store.update_ticket_status(ticket.ticket_id, TicketStatus.RESOLVED)
    resolved = store.get_ticket(ticket.ticket_id)
    assert resolved.resolved_at is not None

    store.update_ticket_status(ticket.ticket_id, TicketStatus.CLOSED)
    assert store.get_ticket(ticket.ticket_id).resolved_at is not None

    store.update_ticket_status(ticket.ticket_id, TicketStatus.OPEN)
    assert store.get_ticket(ticket.ticket_id).resolved_at is None


@pytest.mark.unit
def test_update_ticket_handler(store):
    session = store.create_session("user-1")
    ticket = store.create_ticket(session.session_id, "2", TicketPriority.MEDIUM)

    store.update_ticket_status(ticket.ticket_id, TicketStatus.IN_PROGRESS, handler_id="7")

    loaded = store.get_ticket(ticket.ticket_id)
    assert loaded.status == TicketStatus.IN_PROGRESS
    assert loaded.handler_id == "7"
    assert store.update_ticket_status("missing", TicketStatus.CLOSED) is False


@pytest.mark.unit
def test_list_tickets_filters(store):
    a = store.create_session("user-1")
    b = store.create_session("user-2")
    t1 = store.create_ticket(a.session_id, "2", TicketPriority.MEDIUM)
    store.create_ticket(b.session_id, "3", TicketPriority.HIGH)
    store.update_ticket_status(t1.ticket_id, TicketStatus.RESOLVED)

    assert [t.ticket_id for t in store.list_tickets(status=TicketStatus.RESOLVED)] == [t1.ticket_id]
    assert len(store.list_tickets(handler_id="3")) == 1
    assert len(store.list_tickets()) == 2


@pytest.mark.unit
def test_health_check(store):
    health = store.health_check()
    assert health["status"] == "healthy"


# ===========================
# Concurrency
# ===========================

@pytest.mark.unit
def test_concurrent_ticket_inserts_create_one_ticket():
    store = InMemoryConversationStore()
    session = store.create_session("user-1")
    barrier = threading.Barrier(8)
    created, duplicates = [], []

    def worker():
        barrier.wait()
        try:
            created.append(store.create_ticket(session.session_id, "2", TicketPriority.MEDIUM))
        except DuplicateTicketError:
            duplicates.append(True)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(created) == 1
    assert len(duplicates) == 7


# ===========================
# Factory
# ===========================

@pytest.mark.unit
def test_factory_creates_stores(test_settings):
    assert isinstance(create_conversation_store("in_memory"), InMemoryConversationStore)

    sql = create_conversation_store("sql", url="sqlite:///:memory:")
    assert isinstance(sql, SQLConversationStore)
    sql.close()

    with pytest.raises(ValueError):
        create_conversation_store("redis")
