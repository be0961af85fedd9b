"""Queue job payloads.

Jobs travel through Redis as flat JSON documents. Incoming jobs are produced
by the listener and consumed by the ingestion worker; outgoing jobs are
produced by the ingestion worker and the control surface and consumed by the
dispatch worker.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ticket_bridge.models.enums import JobOrigin


class MalformedJobError(ValueError):
    """Raised when a queue entry cannot be decoded into a job."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IncomingJob(BaseModel):
    """Normalized inbound chat message awaiting ingestion."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str = Field(min_length=1)
    conversation_name: str = ""
    sender_id: str = ""
    sender_name: str = ""
    text: str = ""
    attachment_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def decode(cls, raw: str) -> "IncomingJob":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise MalformedJobError(str(exc)) from exc


class JobMeta(BaseModel):
    origin: Optional[JobOrigin] = None
    ticket_id: Optional[str] = None


class OutgoingJob(BaseModel):
    """Text addressed to a chat destination."""

    model_config = ConfigDict(frozen=True)

    to: str = Field(min_length=1)
    text: str = Field(min_length=1)
    meta: Optional[JobMeta] = None

    @classmethod
    def build(
        cls,
        to: str,
        text: str,
        origin: Optional[JobOrigin] = None,
        ticket_id: Optional[str] = None,
    ) -> "OutgoingJob":
        meta = JobMeta(origin=origin, ticket_id=ticket_id) if origin or ticket_id else None
        return cls(to=to, text=text, meta=meta)

    @classmethod
    def decode(cls, raw: str) -> "OutgoingJob":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise MalformedJobError(str(exc)) from exc

    def encode(self) -> str:
        return self.model_dump_json(exclude_none=True)
