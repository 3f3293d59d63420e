"""
End-to-end console flows: chat, escalate, handler reply, resolve, close.
"""
import pytest

from support_console.orchestrator import Outcome, SupportConsole
from support_console.orchestrator.console import CONTINUING_NOTICE, GOODBYE_NOTICE, WELCOME_MESSAGE
from support_console.orchestrator.errors import ErrorCode
from support_console.schemas.domain import SenderRole, SessionStatus, TicketPriority, TicketStatus
from support_console.utils.workers import WorkerPool


@pytest.mark.integration
@pytest.mark.asyncio
async def test_full_support_flow(console, backend, memory_store, surface):
    backend.replies = ["Have you tried turning it off and on again?"]

    started = await console.start_session("user-1", "router-x1")
    assert started.success
    session_id = started.data["session"].session_id
    assert started.data["welcome"].content == WELCOME_MESSAGE.format(product="Router X1")

    turn = await console.submit_user_turn(session_id, "My router is broken")
    assert turn.success

    escalated = await console.escalate(session_id)
    assert escalated.success
    assert escalated.data["priority"] == TicketPriority.HIGH
    ticket_id = escalated.data["ticket_id"]

    replied = await console.handler_reply(ticket_id, "2", "I'm checking your account now.")
    assert replied.success
    assert replied.data["ticket"].status == TicketStatus.IN_PROGRESS

    resolved = await console.resolve_ticket(ticket_id, "Dana")
    assert resolved.success
    assert resolved.data["ticket"].status == TicketStatus.RESOLVED

    closed = await console.close_ticket(ticket_id)
    assert closed.data["ticket"].status == TicketStatus.CLOSED

    ended = await console.end_session(session_id)
    assert ended.success
    assert ended.data["session"].status == SessionStatus.CLOSED
    assert ended.data["session"].handler_id == "2"

    transcript = (await console.get_transcript(session_id)).data["transcript"]
    assert [m.role for m in transcript] == [
        SenderRole.ASSISTANT,
        SenderRole.USER,
        SenderRole.ASSISTANT,
        SenderRole.HANDLER,
        SenderRole.SYSTEM,
    ]
    assert transcript[-1].content == "Ticket resolved by Dana"
    assert surface.notices[session_id][-1] == GOODBYE_NOTICE.format(app_name=console.settings.app_name)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_hello_then_urgent_escalation_then_resolve(console, memory_store):
    session_id = (await console.start_session("user-1")).data["session"].session_id
    assert memory_store.get_session(session_id).status == SessionStatus.ACTIVE

    turn = await console.submit_user_turn(session_id, "hello")
    assert turn.data["reply"].role == SenderRole.ASSISTANT

    escalated = await console.escalate(session_id, ["hello", "this is urgent"])
    assert escalated.data["priority"] == TicketPriority.HIGH
    assert escalated.data["ticket"].status == TicketStatus.OPEN
    assert memory_store.get_session(session_id).status == SessionStatus.ESCALATED

    resolved = await console.resolve_ticket(escalated.data["ticket_id"], "Dana")
    assert resolved.data["ticket"].status == TicketStatus.RESOLVED
    last = memory_store.get_messages(session_id)[-1]
    assert last.role == SenderRole.SYSTEM
    assert last.content == "Ticket resolved by Dana"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_flow_on_sql_store(sql_store, backend, surface, catalog, test_settings):
    pool = WorkerPool(1)
    async with SupportConsole(sql_store, backend, settings=test_settings, surface=surface,
                              product_catalog=catalog, pool=pool) as support_console:
        session_id = (await support_console.start_session("user-9", "router-x1")).data["session"].session_id
        await support_console.submit_user_turn(session_id, "urgent: no internet")

        first = await support_console.escalate(session_id)
        second = await support_console.escalate(session_id)

        assert first.outcome == Outcome.OK
        assert second.outcome == Outcome.ALREADY_ESCALATED
        assert sql_store.get_ticket(first.data["ticket_id"]).priority == TicketPriority.HIGH
    pool.shutdown()


@pytest.mark.asyncio
async def test_acknowledge_ticket(console, session_id):
    ticket_id = (await console.escalate(session_id)).data["ticket_id"]

    result = await console.acknowledge_ticket(ticket_id, "7")

    assert result.data["ticket"].status == TicketStatus.IN_PROGRESS
    assert result.data["ticket"].handler_id == "7"

    again = await console.acknowledge_ticket(ticket_id, "7")
    assert again.error_code == ErrorCode.INVALID_TRANSITION


@pytest.mark.asyncio
async def test_resolve_requires_name(console, session_id):
    ticket_id = (await console.escalate(session_id)).data["ticket_id"]

    result = await console.resolve_ticket(ticket_id, "  ")

    assert result.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_handler_reply_requires_text(console, session_id):
    ticket_id = (await console.escalate(session_id)).data["ticket_id"]

    result = await console.handler_reply(ticket_id, "2", "")

    assert result.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_user_can_keep_chatting_after_escalation(console, session_id):
    await console.escalate(session_id)

    result = await console.submit_user_turn(session_id, "still there?")

    assert result.success


@pytest.mark.asyncio
async def test_resume_existing_session(console, session_id, surface):
    await console.submit_user_turn(session_id, "hello")

    resumed = await console.resume_session(session_id)

    assert resumed.success
    assert len(resumed.data["transcript"]) == 3
    assert surface.notices[session_id][-1] == CONTINUING_NOTICE


@pytest.mark.asyncio
async def test_resume_empty_session_greets(console, memory_store):
    session = memory_store.create_session("user-1", "router-x1")

    resumed = await console.resume_session(session.session_id)

    transcript = resumed.data["transcript"]
    assert len(transcript) == 1
    assert transcript[0].role == SenderRole.ASSISTANT
    assert "Router X1" in transcript[0].content


@pytest.mark.asyncio
async def test_resume_closed_session_rejected(console, session_id):
    await console.end_session(session_id)

    result = await console.resume_session(session_id)

    assert result.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_end_session_twice(console, session_id):
    assert (await console.end_session(session_id)).success

    result = await console.end_session(session_id)

    assert result.error_code == ErrorCode.INVALID_TRANSITION


@pytest.mark.asyncio
async def test_end_session_releases_session_resources(console):
    session_ids = []
    for n in range(20):
        session_id = (await console.start_session(f"user-{n}")).data["session"].session_id
        await console.submit_user_turn(session_id, "hello")
        session_ids.append(session_id)
    assert len(console.locks) == 20

    for session_id in session_ids:
        assert (await console.end_session(session_id)).success

    assert len(console.locks) == 0
    assert len(console.channels) == 0


@pytest.mark.asyncio
async def test_resolve_after_session_closed(console, session_id, memory_store):
    ticket_id = (await console.escalate(session_id)).data["ticket_id"]
    await console.end_session(session_id)

    resolved = await console.resolve_ticket(ticket_id, "Dana")

    assert resolved.success
    assert memory_store.get_messages(session_id)[-1].content == "Ticket resolved by Dana"


@pytest.mark.asyncio
async def test_start_session_validates_user(console):
    result = await console.start_session("bad user id!")

    assert not result.success
    assert result.error_code == ErrorCode.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_ticket_lookup_and_result_serialization(console, session_id):
    assert (await console.get_ticket_for_session(session_id)).data["ticket"] is None

    escalated = await console.escalate(session_id)
    found = await console.get_ticket_for_session(session_id)
    assert found.data["ticket"].ticket_id == escalated.data["ticket_id"]

    payload = escalated.to_dict()
    assert payload["success"] is True
    assert payload["outcome"] == "ok"
    assert payload["data"]["priority"] == "MEDIUM"
    assert payload["data"]["ticket"]["status"] == "OPEN"


@pytest.mark.asyncio
async def test_health_check(console):
    health = await console.health_check()

    assert health["store"]["status"] == "healthy"
    assert health["backend_ready"] is True
    assert health["circuit_breaker"]["state"] == "closed"


@pytest.mark.asyncio
async def test_closed_console_rejects_operations(console):
    await console.close()

    result = await console.start_session("user-1")

    assert not result.success
