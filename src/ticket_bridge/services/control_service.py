"""Operator control surface: pause, replies, status changes, manual sends."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ticket_bridge import constants
from ticket_bridge.clients.queue import QueueError, RedisQueue
from ticket_bridge.models.enums import JobOrigin, MessageSource, TicketStatus
from ticket_bridge.models.job import OutgoingJob
from ticket_bridge.models.ticket import Message, Ticket
from ticket_bridge.services.ticket_service import TicketService
from ticket_bridge.transport.connection import ConnectionMonitor

LOG = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a record was written but its notification could not be queued."""


class ControlService:
    """Writes control state and converges operator actions on ``queue:outgoing``."""

    def __init__(
        self,
        queue: RedisQueue,
        tickets: TicketService,
        connection: Optional[ConnectionMonitor] = None,
    ) -> None:
        self.queue = queue
        self.tickets = tickets
        self.connection = connection

    def pause(self) -> None:
        self.queue.set_paused(True)
        LOG.info("Outbound dispatch paused")

    def resume(self) -> None:
        self.queue.set_paused(False)
        LOG.info("Outbound dispatch resumed")

    def status(self) -> Dict[str, Any]:
        return {
            "paused": self.queue.is_paused(),
            "incoming": self.queue.depth(constants.INCOMING_QUEUE),
            "outgoing": self.queue.depth(constants.OUTGOING_QUEUE),
            "connection": self.connection.state.value if self.connection else None,
        }

    def reply(self, ticket_id: str, agent_name: str, text: str) -> Message:
        """Record an agent reply and queue it for the ticket's conversation."""
        ticket = self.tickets.require_ticket(ticket_id)
        message = self.tickets.insert_message(ticket.id, MessageSource.AGENT, text)
        self._notify(ticket, f"*{agent_name}*: {text}", JobOrigin.AGENT_REPLY)
        LOG.info("Enqueued reply for ticket %s", ticket.code)
        return message

    def update_status(self, ticket_id: str, status: TicketStatus) -> Ticket:
        ticket = self.tickets.update_ticket_status(ticket_id, status)
        self._notify(
            ticket,
            f"*Support Agent* has changed the status of ticket *{ticket.code}* to: *{status.value}*.",
            JobOrigin.STATUS_CHANGE,
        )
        return ticket

    def enqueue_manual(self, to: str, text: str) -> OutgoingJob:
        job = OutgoingJob.build(to, text, origin=JobOrigin.MANUAL)
        self.queue.push(constants.OUTGOING_QUEUE, job.encode())
        LOG.info("Enqueued manual message for %s", to)
        return job

    def _notify(self, ticket: Ticket, text: str, origin: JobOrigin) -> None:
        job = OutgoingJob.build(ticket.conversation_id, text, origin=origin, ticket_id=ticket.id)
        try:
            self.queue.push(constants.OUTGOING_QUEUE, job.encode())
        except QueueError as exc:
            raise NotificationError(
                f"Ticket {ticket.code} was updated but the notification could not be queued."
            ) from exc
