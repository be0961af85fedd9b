"""Outbound dispatch worker: delivers queued replies through the transport."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ticket_bridge import constants
from ticket_bridge.clients.queue import QueueError, RedisQueue
from ticket_bridge.models.job import MalformedJobError, OutgoingJob
from ticket_bridge.settings import Settings
from ticket_bridge.transport.base import Transport, TransportError
from ticket_bridge.utils.recipients import normalize_recipient

LOG = logging.getLogger(__name__)


class DispatchResult:
    SENT = "sent"
    REQUEUED = "requeued"
    DROPPED = "dropped"
    WAITING = "waiting"
    IDLE = "idle"


class DispatchWorker:
    """Single consumer of ``queue:outgoing``.

    Each iteration checks connectivity, then the pause flag, and only then
    blocks on the queue. One send attempt is made per pacing interval.
    """

    def __init__(
        self,
        queue: RedisQueue,
        transport: Transport,
        settings: Settings,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.queue = queue
        self.transport = transport
        self.settings = settings
        self.stop_event = stop_event or threading.Event()

    def run_forever(self) -> None:
        LOG.info(
            "Starting dispatch worker on %s (%.2f msg/s)",
            constants.OUTGOING_QUEUE,
            self.settings.global_rate_limit_per_second,
        )
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                LOG.exception("Error in dispatch loop")
                self.stop_event.wait(self.settings.dispatch_error_backoff_seconds)
        LOG.info("Dispatch worker stopped")

    def run_once(self, timeout: Optional[int] = None) -> str:
        if not self.transport.is_connected():
            self.stop_event.wait(self.settings.disconnected_poll_seconds)
            return DispatchResult.WAITING

        if self.queue.is_paused():
            self.stop_event.wait(self.settings.paused_poll_seconds)
            return DispatchResult.WAITING

        wait = self.settings.pop_timeout_seconds if timeout is None else timeout
        raw = self.queue.pop(constants.OUTGOING_QUEUE, timeout=wait)
        if raw is None:
            return DispatchResult.IDLE
        return self.deliver(raw)

    def deliver(self, raw: str) -> str:
        """Attempt one delivery of a serialized outgoing job."""
        try:
            job = OutgoingJob.decode(raw)
            recipient = normalize_recipient(job.to)
        except (MalformedJobError, ValueError) as exc:
            LOG.error("Dropping malformed outgoing job: %s", exc)
            return DispatchResult.DROPPED

        if not self.transport.is_connected():
            LOG.warning("Not connected, re-enqueueing outgoing job for %s", job.to)
            self._requeue(raw)
            return DispatchResult.REQUEUED

        try:
            self.transport.send_text(recipient, job.text)
        except TransportError:
            LOG.exception("Failed to send message to %s; requeueing job", job.to)
            self._requeue(raw)
            result = DispatchResult.REQUEUED
        else:
            LOG.info("Sent message to %s", job.to)
            result = DispatchResult.SENT

        self.stop_event.wait(self.settings.send_interval_seconds)
        return result

    def _requeue(self, raw: str) -> None:
        try:
            self.queue.requeue(constants.OUTGOING_QUEUE, raw)
        except QueueError:
            LOG.critical("Could not requeue outgoing job; it is lost: %s", raw)
            raise
        self.stop_event.wait(self.settings.requeue_delay_seconds)
