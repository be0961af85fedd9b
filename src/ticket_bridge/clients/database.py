"""Relational ticket store for Ticket Bridge."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, create_engine, text
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker

from ticket_bridge import constants
from ticket_bridge.models.enums import MessageSource, TicketStatus
from ticket_bridge.utils.pathing import ensure_runtime_directories


class BaseModel(DeclarativeBase):
    """Declarative base class for SQLAlchemy models."""


def _build_engine(url: Optional[str] = None, echo: bool = False):
    if url is None:
        ensure_runtime_directories()
        url = f"sqlite:///{constants.DB_FILE}"
    return create_engine(url, echo=echo, future=True)


ENGINE = None
SESSION_FACTORY: Optional[sessionmaker] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_column() -> Enum:
    return Enum(TicketStatus, values_callable=lambda members: [m.value for m in members], native_enum=False)


class Group(BaseModel):
    """Chat conversation that owns a ticket counter."""

    __tablename__ = "groups"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    ticket_counter: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    tickets: Mapped[list["Ticket"]] = relationship(back_populates="group")


class Ticket(BaseModel):
    """Support ticket opened from a chat conversation."""

    __tablename__ = "tickets"
    __table_args__ = (
        # At most one open ticket per (conversation, counterparty).
        Index(
            "ux_tickets_open_counterparty",
            "conversation_id",
            "counterparty_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    code: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    group_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("groups.id"), nullable=True)
    conversation_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    conversation_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    counterparty_id: Mapped[str] = mapped_column(String, nullable=False)
    counterparty_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[TicketStatus] = mapped_column(
        _status_column(), default=TicketStatus.OPEN, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    group: Mapped[Optional["Group"]] = relationship(back_populates="tickets")
    messages: Mapped[list["Message"]] = relationship(back_populates="ticket")


class Message(BaseModel):
    """Append-only message attached to a ticket."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ticket_id: Mapped[str] = mapped_column(String, ForeignKey("tickets.id"), nullable=False, index=True)
    source: Mapped[MessageSource] = mapped_column(
        Enum(MessageSource, values_callable=lambda members: [m.value for m in members], native_enum=False),
        nullable=False,
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    ticket: Mapped["Ticket"] = relationship(back_populates="messages")


def init_db(url: Optional[str] = None, echo: bool = False) -> None:
    """Create tables if they do not exist."""
    global ENGINE, SESSION_FACTORY
    if ENGINE is not None:
        ENGINE.dispose()
    ENGINE = _build_engine(url, echo=echo)
    SESSION_FACTORY = sessionmaker(
        bind=ENGINE,
        autoflush=False,
        expire_on_commit=False,
        future=True,
    )
    BaseModel.metadata.create_all(bind=ENGINE)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    if SESSION_FACTORY is None:
        init_db()
    session = SESSION_FACTORY()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
