"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the ticket store the SLA engine reads and writes.

These are the database representations of our domain objects.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from infrastructure.database import Base
from config import Priority, TicketStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


ticket_tags = Table(
    "ticket_tags",
    Base.metadata,
    Column("ticket_id", ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class CalendarModel(Base):
    """
    Business calendar.

    working_hours: {"monday": {"start": "09:00", "end": "18:00"}, ...}
    holidays: ["2024-12-25", {"date": "2025-01-01", "name": "New Year"}, ...]
    """
    __tablename__ = "calendars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    working_hours: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    holidays: Mapped[list] = mapped_column(JSON, nullable=False, default=list)


class ContractModel(Base):
    """Customer contract; owns a calendar and its SLA rules."""
    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    calendar_id: Mapped[Optional[int]] = mapped_column(ForeignKey("calendars.id"), nullable=True)

    calendar: Mapped[Optional[CalendarModel]] = relationship(lazy="selectin")
    sla_rules: Mapped[List["SLARuleModel"]] = relationship(
        back_populates="contract", lazy="selectin", cascade="all, delete-orphan"
    )


class SLARuleModel(Base):
    """Response/solution minutes for one (contract, priority)."""
    __tablename__ = "sla_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contract_id: Mapped[int] = mapped_column(ForeignKey("contracts.id", ondelete="CASCADE"), nullable=False)
    priority: Mapped[str] = mapped_column(String(50), nullable=False)
    response_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    solution_time_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    contract: Mapped[ContractModel] = relationship(back_populates="sla_rules")

    __table_args__ = (
        UniqueConstraint("contract_id", "priority", name="uq_sla_rules_contract_priority"),
    )


class TicketStatusModel(Base):
    """Status configuration consumed by the monitor."""
    __tablename__ = "ticket_statuses"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    pauses_sla: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_terminal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class UserModel(Base):
    """Minimal user record, used to validate assignments."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TagModel(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


class TicketModel(Base):
    """
    Database model for Ticket.

    Maps to the 'tickets' table. The SLA engine only writes the deadline
    columns; automation actions write priority, status, assignee and category.
    """
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subject: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.OPEN, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    contract_id: Mapped[Optional[int]] = mapped_column(ForeignKey("contracts.id"), nullable=True)
    assignee_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    requester_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    first_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # SLA deadlines
    response_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    solution_due_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    tags: Mapped[List[TagModel]] = relationship(secondary=ticket_tags, lazy="selectin")


class TicketAnnotationModel(Base):
    """
    Internal or external note on a ticket.

    event_kind/due_type are set for engine-written notes and drive deduplication.
    """
    __tablename__ = "ticket_annotations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    event_kind: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    due_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_ticket_annotations_dedup", "ticket_id", "event_kind", "created_at"),
    )
