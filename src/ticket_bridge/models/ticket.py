"""Ticket, group and message models exposed over the API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ticket_bridge.models.enums import MessageSource, TicketStatus


class Group(BaseModel):
    """Conversation-level container that scopes ticket codes."""

    id: str
    conversation_id: str
    name: Optional[str] = None
    ticket_counter: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Ticket(BaseModel):
    """Support ticket bound to one counterparty inside one conversation."""

    id: str
    code: str
    group_id: Optional[str] = None
    conversation_id: str
    conversation_name: Optional[str] = None
    counterparty_id: str
    counterparty_name: Optional[str] = None
    subject: str
    status: TicketStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Message(BaseModel):
    id: int
    ticket_id: str
    source: MessageSource
    body: str
    attachment_url: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TicketDetail(BaseModel):
    ticket: Ticket
    messages: List[Message]


class ReplyRequest(BaseModel):
    agent_name: str = Field(min_length=1)
    text: str = Field(min_length=1)


class StatusUpdateRequest(BaseModel):
    status: TicketStatus


class OutgoingCreateRequest(BaseModel):
    to: str = Field(min_length=1)
    text: str = Field(min_length=1)
