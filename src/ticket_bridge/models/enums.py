"""Shared enums for Ticket Bridge models."""

from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    CLOSED = "closed"


class MessageSource(str, Enum):
    USER = "user"
    AGENT = "agent"


class JobOrigin(str, Enum):
    INCOMING_MESSAGE = "incoming_message"
    TICKET_CREATED = "ticket_created"
    CLOSE_COMMAND = "close_command"
    AGENT_REPLY = "agent_reply"
    STATUS_CHANGE = "status_change"
    MANUAL = "manual"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    LOGGED_OUT = "logged_out"
