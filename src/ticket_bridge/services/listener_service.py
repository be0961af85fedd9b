"""Transport listener: filters inbound chat events onto the incoming queue."""

from __future__ import annotations

import logging
from typing import Optional

from ticket_bridge import constants
from ticket_bridge.clients.queue import QueueError, RedisQueue, dedupe_key
from ticket_bridge.models.events import InboundEvent
from ticket_bridge.models.job import IncomingJob
from ticket_bridge.settings import Settings
from ticket_bridge.utils.recipients import is_group_id

LOG = logging.getLogger(__name__)


class ListenerService:
    """Accepts gateway events and enqueues the ones addressed to the bot."""

    def __init__(self, queue: RedisQueue, settings: Settings) -> None:
        self.queue = queue
        self.settings = settings

    def handle_event(self, event: InboundEvent) -> Optional[IncomingJob]:
        """Return the enqueued job, or None when the event was filtered out."""
        if not self._is_addressed_to_bot(event):
            return None

        key = dedupe_key(event.conversation_id, event.sender_id, event.text)
        # Claim before pushing so concurrent deliveries of the same event lose;
        # a failed push gives the marker back so the sender's retry is accepted.
        if not self.queue.claim(key, self.settings.dedupe_ttl_seconds):
            LOG.info("Duplicate message detected, ignoring: %s", key)
            return None

        job = IncomingJob(
            conversation_id=event.conversation_id,
            conversation_name=event.conversation_name,
            sender_id=event.sender_id,
            sender_name=event.sender_name,
            text=event.text,
            attachment_url=event.attachment_url,
        )
        try:
            self.queue.push(constants.INCOMING_QUEUE, job.model_dump_json())
        except QueueError:
            self._release(key)
            raise
        LOG.info(
            "Message enqueued from %s in %s",
            event.sender_name or event.sender_id,
            event.conversation_name or event.conversation_id,
        )
        return job

    def _is_addressed_to_bot(self, event: InboundEvent) -> bool:
        if event.from_me or not event.text.strip():
            return False
        if not is_group_id(event.conversation_id):
            return False

        bot_id = self.settings.bot_id
        trigger = self.settings.trigger_keyword
        if not bot_id and not trigger:
            return True
        mentioned = bool(bot_id) and bot_id in event.mentioned_ids
        triggered = bool(trigger) and trigger in event.text
        return mentioned or triggered

    def _release(self, key: str) -> None:
        try:
            self.queue.release(key)
        except QueueError:
            LOG.warning("Could not release dedupe marker %s; retries are ignored until it expires", key)
