import pytest

from ticket_bridge import constants
from ticket_bridge.models.enums import MessageSource, TicketStatus
from ticket_bridge.services.control_service import NotificationError
from ticket_bridge.services.ticket_service import TicketConflictError, TicketNotFoundError


def test_pause_and_resume_are_idempotent(control_service, fake_redis, outgoing):
    control_service.pause()
    control_service.pause()
    assert control_service.status()["paused"] is True

    control_service.resume()
    control_service.resume()
    assert control_service.status()["paused"] is False
    assert outgoing() == []


def test_status_reports_depths_and_connection(control_service, fake_redis):
    fake_redis.lpush(constants.INCOMING_QUEUE, "a")
    fake_redis.lpush(constants.OUTGOING_QUEUE, "b", "c")

    assert control_service.status() == {
        "paused": False,
        "incoming": 1,
        "outgoing": 2,
        "connection": "connected",
    }


def test_reply_persists_agent_message_and_enqueues_one_job(control_service, ticket_service, outgoing):
    ticket = ticket_service.create_ticket("G1@g.us", "S1", "broken")

    message = control_service.reply(ticket.id, "Dana", "We are on it")

    assert message.source == MessageSource.AGENT
    assert [m.body for m in ticket_service.list_messages(ticket.id)] == ["We are on it"]
    jobs = outgoing()
    assert len(jobs) == 1
    assert jobs[0]["to"] == "G1@g.us"
    assert jobs[0]["text"] == "*Dana*: We are on it"
    assert jobs[0]["meta"] == {"origin": "agent_reply", "ticket_id": ticket.id}


def test_reply_to_unknown_ticket_writes_nothing(control_service, outgoing):
    with pytest.raises(TicketNotFoundError):
        control_service.reply("missing", "Dana", "hello")
    assert outgoing() == []


def test_reply_surfaces_enqueue_failure_after_insert(control_service, ticket_service, fake_redis):
    ticket = ticket_service.create_ticket("G1@g.us", "S1", "broken")
    fake_redis.offline = True

    with pytest.raises(NotificationError):
        control_service.reply(ticket.id, "Dana", "We are on it")

    assert [m.body for m in ticket_service.list_messages(ticket.id)] == ["We are on it"]


def test_status_change_updates_ticket_and_notifies(control_service, ticket_service, outgoing):
    ticket = ticket_service.create_ticket("G1@g.us", "S1", "broken")

    updated = control_service.update_status(ticket.id, TicketStatus.PENDING)

    assert updated.status == TicketStatus.PENDING
    jobs = outgoing()
    assert len(jobs) == 1
    assert jobs[0]["text"] == (
        f"*Support Agent* has changed the status of ticket *{ticket.code}* to: *pending*."
    )
    assert jobs[0]["meta"]["origin"] == "status_change"


def test_status_change_unknown_ticket(control_service, outgoing):
    with pytest.raises(TicketNotFoundError):
        control_service.update_status("missing", TicketStatus.CLOSED)
    assert outgoing() == []


def test_reopening_conflicts_with_existing_open_ticket(control_service, ticket_service, outgoing):
    old = ticket_service.create_ticket("G1@g.us", "S1", "old")
    control_service.update_status(old.id, TicketStatus.CLOSED)
    ticket_service.create_ticket("G1@g.us", "S1", "new")

    with pytest.raises(TicketConflictError):
        control_service.update_status(old.id, TicketStatus.OPEN)
    assert ticket_service.get_ticket(old.id).status == TicketStatus.CLOSED
    assert len(outgoing()) == 1


def test_manual_enqueue(control_service, outgoing):
    control_service.enqueue_manual("919999988888", "Hello from the test script")

    assert outgoing() == [
        {"to": "919999988888", "text": "Hello from the test script", "meta": {"origin": "manual"}}
    ]
