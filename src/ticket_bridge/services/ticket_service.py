"""Ticket store operations."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ticket_bridge.clients.database import (
    Group as GroupORM,
    Message as MessageORM,
    Ticket as TicketORM,
    session_scope,
)
from ticket_bridge.models.enums import MessageSource, TicketStatus
from ticket_bridge.models.ticket import Group, Message, Ticket

LOG = logging.getLogger(__name__)


class TicketNotFoundError(LookupError):
    """Raised when a ticket id or code does not resolve."""


class TicketConflictError(RuntimeError):
    """Raised when a change would leave two open tickets for one counterparty."""


def format_ticket_code(prefix: str, group_id: str, counter: int) -> str:
    return f"{prefix}{group_id.split('-')[0]}-{counter}".upper()


class TicketService:
    """Record-level access to groups, tickets and messages."""

    def __init__(self, code_prefix: str = "TKT") -> None:
        self.code_prefix = code_prefix

    # Groups ---------------------------------------------------------------------
    def get_or_create_group(self, conversation_id: str, name: Optional[str] = None) -> Group:
        with session_scope() as db:
            group = self._group_by_conversation(db, conversation_id)
            if group:
                return Group.model_validate(group, from_attributes=True)

        try:
            with session_scope() as db:
                group = GroupORM(id=str(uuid.uuid4()), conversation_id=conversation_id, name=name or None)
                db.add(group)
        except IntegrityError:
            # Another worker created it between our read and insert.
            with session_scope() as db:
                group = self._group_by_conversation(db, conversation_id)
                if group is None:
                    raise
                return Group.model_validate(group, from_attributes=True)
        LOG.info("Created group %s for conversation %s", group.id, conversation_id)
        return Group.model_validate(group, from_attributes=True)

    def increment_group_counter(self, group_id: str, db: Optional[Session] = None) -> int:
        """Atomically bump and return the group's ticket counter."""
        if db is None:
            with session_scope() as session:
                return self._increment(session, group_id)
        return self._increment(db, group_id)

    @staticmethod
    def _increment(db: Session, group_id: str) -> int:
        db.execute(
            update(GroupORM)
            .where(GroupORM.id == group_id)
            .values(ticket_counter=GroupORM.ticket_counter + 1)
        )
        counter = db.execute(select(GroupORM.ticket_counter).where(GroupORM.id == group_id)).scalar_one_or_none()
        if counter is None:
            raise LookupError(f"Group '{group_id}' not found.")
        return counter

    @staticmethod
    def _group_by_conversation(db: Session, conversation_id: str) -> Optional[GroupORM]:
        return db.execute(
            select(GroupORM).where(GroupORM.conversation_id == conversation_id)
        ).scalar_one_or_none()

    # Tickets --------------------------------------------------------------------
    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        with session_scope() as db:
            ticket = db.get(TicketORM, ticket_id)
            return Ticket.model_validate(ticket, from_attributes=True) if ticket else None

    def require_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket '{ticket_id}' not found.")
        return ticket

    def find_ticket_by_code(self, code: str) -> Optional[Ticket]:
        with session_scope() as db:
            ticket = db.execute(
                select(TicketORM).where(TicketORM.code == code.upper())
            ).scalar_one_or_none()
            return Ticket.model_validate(ticket, from_attributes=True) if ticket else None

    def find_open_ticket(self, conversation_id: str, counterparty_id: str) -> Optional[Ticket]:
        with session_scope() as db:
            ticket = db.execute(
                select(TicketORM).where(
                    TicketORM.conversation_id == conversation_id,
                    TicketORM.counterparty_id == counterparty_id,
                    TicketORM.status == TicketStatus.OPEN,
                )
            ).scalar_one_or_none()
            return Ticket.model_validate(ticket, from_attributes=True) if ticket else None

    def list_tickets(self, status: Optional[TicketStatus] = None) -> List[Ticket]:
        with session_scope() as db:
            query = select(TicketORM).order_by(TicketORM.created_at.desc())
            if status:
                query = query.where(TicketORM.status == status)
            tickets = db.execute(query).scalars().all()
            return [Ticket.model_validate(obj, from_attributes=True) for obj in tickets]

    def create_ticket(
        self,
        conversation_id: str,
        counterparty_id: str,
        subject: str,
        conversation_name: Optional[str] = None,
        counterparty_name: Optional[str] = None,
    ) -> Ticket:
        """Create an open ticket with a freshly minted code.

        The counter increment and the insert share one transaction, so a
        rejected insert never burns a code. Raises ``TicketConflictError``
        when the counterparty already has an open ticket.
        """
        group = self.get_or_create_group(conversation_id, conversation_name)
        try:
            with session_scope() as db:
                counter = self._increment(db, group.id)
                ticket = TicketORM(
                    id=str(uuid.uuid4()),
                    code=format_ticket_code(self.code_prefix, group.id, counter),
                    group_id=group.id,
                    conversation_id=conversation_id,
                    conversation_name=conversation_name or None,
                    counterparty_id=counterparty_id,
                    counterparty_name=counterparty_name or None,
                    subject=subject,
                    status=TicketStatus.OPEN,
                )
                db.add(ticket)
                db.flush()
        except IntegrityError as exc:
            raise TicketConflictError(
                f"Counterparty '{counterparty_id}' already has an open ticket in '{conversation_id}'."
            ) from exc
        LOG.info("Created ticket %s for %s in %s", ticket.code, counterparty_id, conversation_id)
        return Ticket.model_validate(ticket, from_attributes=True)

    def open_or_attach(
        self,
        conversation_id: str,
        counterparty_id: str,
        subject: str,
        conversation_name: Optional[str] = None,
        counterparty_name: Optional[str] = None,
    ) -> Tuple[Ticket, bool]:
        """Return the counterparty's open ticket, creating it if needed.

        The boolean is True when this call created the ticket. Concurrent
        callers race on the store's uniqueness constraint; losers re-read the
        winner's ticket.
        """
        existing = self.find_open_ticket(conversation_id, counterparty_id)
        if existing:
            return existing, False
        try:
            created = self.create_ticket(
                conversation_id,
                counterparty_id,
                subject,
                conversation_name=conversation_name,
                counterparty_name=counterparty_name,
            )
            return created, True
        except TicketConflictError:
            existing = self.find_open_ticket(conversation_id, counterparty_id)
            if existing is None:
                raise
            LOG.info("Lost open-ticket race for %s in %s; attaching to %s", counterparty_id, conversation_id, existing.code)
            return existing, False

    def update_ticket_status(self, ticket_id: str, status: TicketStatus) -> Ticket:
        try:
            with session_scope() as db:
                ticket = db.get(TicketORM, ticket_id)
                if not ticket:
                    raise TicketNotFoundError(f"Ticket '{ticket_id}' not found.")
                ticket.status = status
                db.flush()
        except IntegrityError as exc:
            raise TicketConflictError(
                f"Cannot set ticket '{ticket_id}' to {status.value}: another ticket is already open."
            ) from exc
        return Ticket.model_validate(ticket, from_attributes=True)

    def close_by_code(self, code: str) -> Ticket:
        ticket = self.find_ticket_by_code(code)
        if ticket is None:
            raise TicketNotFoundError(f"Ticket code '{code}' not found.")
        return self.update_ticket_status(ticket.id, TicketStatus.CLOSED)

    # Messages -------------------------------------------------------------------
    def insert_message(
        self,
        ticket_id: str,
        source: MessageSource,
        body: str,
        attachment_url: Optional[str] = None,
    ) -> Message:
        with session_scope() as db:
            if db.get(TicketORM, ticket_id) is None:
                raise TicketNotFoundError(f"Ticket '{ticket_id}' not found.")
            message = MessageORM(ticket_id=ticket_id, source=source, body=body, attachment_url=attachment_url)
            db.add(message)
            db.flush()
            db.refresh(message)
        return Message.model_validate(message, from_attributes=True)

    def list_messages(self, ticket_id: str) -> List[Message]:
        with session_scope() as db:
            messages = (
                db.execute(
                    select(MessageORM)
                    .where(MessageORM.ticket_id == ticket_id)
                    .order_by(MessageORM.created_at.asc(), MessageORM.id.asc())
                )
                .scalars()
                .all()
            )
            return [Message.model_validate(obj, from_attributes=True) for obj in messages]
