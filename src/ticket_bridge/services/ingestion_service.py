"""Inbound ingestion worker: turns queued chat messages into tickets."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ticket_bridge import constants
from ticket_bridge.clients.queue import QueueError, RedisQueue, cooldown_key
from ticket_bridge.models.enums import JobOrigin, MessageSource
from ticket_bridge.models.job import IncomingJob, MalformedJobError, OutgoingJob
from ticket_bridge.models.ticket import Ticket
from ticket_bridge.services.ticket_service import TicketConflictError, TicketNotFoundError, TicketService
from ticket_bridge.settings import Settings
from ticket_bridge.utils.commands import CLOSE, OPEN, parse_command, summarize_subject

LOG = logging.getLogger(__name__)


class IngestionWorker:
    """Drains ``queue:incoming`` and emits acknowledgements onto ``queue:outgoing``.

    A job is consumed once popped. Store failures abort that job only and
    the loop backs off before the next pop; nothing is retried.
    """

    def __init__(
        self,
        queue: RedisQueue,
        tickets: TicketService,
        settings: Settings,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.queue = queue
        self.tickets = tickets
        self.settings = settings
        self.stop_event = stop_event or threading.Event()

    def run_forever(self) -> None:
        LOG.info("Starting ingestion worker on %s", constants.INCOMING_QUEUE)
        while not self.stop_event.is_set():
            self.run_once()
        LOG.info("Ingestion worker stopped")

    def run_once(self, timeout: Optional[int] = None) -> bool:
        """Pop and process at most one job. Returns True if a job was consumed."""
        wait = self.settings.pop_timeout_seconds if timeout is None else timeout
        try:
            raw = self.queue.pop(constants.INCOMING_QUEUE, timeout=wait)
        except QueueError:
            LOG.exception("Could not read incoming queue")
            self.stop_event.wait(self.settings.ingest_error_backoff_seconds)
            return False
        if raw is None:
            return False

        try:
            self.process(raw)
        except MalformedJobError as exc:
            LOG.error("Dropping malformed incoming job: %s", exc)
        except Exception:
            LOG.exception("Failed to process incoming job; skipping it")
            self.stop_event.wait(self.settings.ingest_error_backoff_seconds)
        return True

    def process(self, raw: str) -> Optional[OutgoingJob]:
        """Handle one serialized incoming job and return the acknowledgement, if any."""
        job = IncomingJob.decode(raw)
        command = parse_command(job.text, self.settings.close_command, self.settings.open_command)
        if command and command.name == CLOSE:
            return self._handle_close(command.argument)
        if command and command.name == OPEN:
            return self._handle_open(job)
        return self._handle_message(job)

    def _handle_close(self, code: Optional[str]) -> Optional[OutgoingJob]:
        if not code:
            LOG.info("Close command received without a ticket code")
            return None
        try:
            ticket = self.tickets.close_by_code(code)
        except TicketNotFoundError:
            LOG.info("Could not find ticket %s to close", code)
            return None

        LOG.info("Closed ticket %s", ticket.code)
        return self._emit(
            ticket.conversation_id,
            f"Ticket *{ticket.code}* has been closed by the user.",
            JobOrigin.CLOSE_COMMAND,
            ticket,
        )

    def _handle_open(self, job: IncomingJob) -> Optional[OutgoingJob]:
        try:
            ticket = self.tickets.create_ticket(
                job.conversation_id,
                job.sender_id,
                job.text,
                conversation_name=job.conversation_name,
                counterparty_name=job.sender_name,
            )
            text = f"Ticket *{ticket.code}* has been created."
            origin = JobOrigin.TICKET_CREATED
        except TicketConflictError:
            ticket = self.tickets.find_open_ticket(job.conversation_id, job.sender_id)
            if ticket is None:
                raise
            text = f"Ticket *{ticket.code}* is already open; your message was added to it."
            origin = JobOrigin.INCOMING_MESSAGE

        self._persist(job, ticket)
        LOG.info("Ticket %s handled open command from %s", ticket.code, job.sender_id)
        return self._acknowledge(job, text, origin, ticket)

    def _handle_message(self, job: IncomingJob) -> Optional[OutgoingJob]:
        ticket, created = self.tickets.open_or_attach(
            job.conversation_id,
            job.sender_id,
            summarize_subject(job.text, constants.SUBJECT_MAX_LENGTH),
            conversation_name=job.conversation_name,
            counterparty_name=job.sender_name,
        )
        self._persist(job, ticket)

        if created:
            return self._acknowledge(
                job,
                f"✅ Ticket #{ticket.code} created for \"{ticket.subject}\".",
                JobOrigin.TICKET_CREATED,
                ticket,
            )
        return self._acknowledge(
            job,
            f"💬 New message added to Ticket #{ticket.code}.",
            JobOrigin.INCOMING_MESSAGE,
            ticket,
        )

    def _persist(self, job: IncomingJob, ticket: Ticket) -> None:
        self.tickets.insert_message(
            ticket.id,
            MessageSource.USER,
            job.text,
            attachment_url=job.attachment_url,
        )

    def _acknowledge(
        self, job: IncomingJob, text: str, origin: JobOrigin, ticket: Ticket
    ) -> Optional[OutgoingJob]:
        """Enqueue ``text`` unless the conversation or the sender is cooling down.

        Both markers are claimed in one atomic step, so among concurrent
        workers only the one that claims them sends.
        """
        claimed = self.queue.claim_all(
            {
                cooldown_key("conversation", job.conversation_id): self.settings.conversation_cooldown_seconds,
                cooldown_key("sender", job.sender_id): self.settings.sender_cooldown_seconds,
            }
        )
        if not claimed:
            LOG.debug("Acknowledgement for ticket %s suppressed by cooldown", ticket.code)
            return None
        return self._emit(job.conversation_id, text, origin, ticket)

    def _emit(self, to: str, text: str, origin: JobOrigin, ticket: Ticket) -> OutgoingJob:
        outgoing = OutgoingJob.build(to, text, origin=origin, ticket_id=ticket.id)
        self.queue.push(constants.OUTGOING_QUEUE, outgoing.encode())
        LOG.info("Enqueued %s notification for ticket %s", origin.value, ticket.code)
        return outgoing
