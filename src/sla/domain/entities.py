"""
SLA Domain Entities
====================

Pure Python domain entities for SLA monitoring.

The engine does not own tickets: it reads them from the ticket-management
collaborator and only ever writes the two deadline fields back.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Optional


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


@dataclass
class Ticket:
    """
    Ticket entity as seen by the SLA engine.

    Only response_due_at and solution_due_at are written by the engine;
    every other field belongs to the ticket-management collaborator.
    """

    id: Any
    priority: str
    status: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    contract_id: Optional[Any] = None

    # Deadlines computed by the engine
    response_due_at: Optional[datetime] = None
    solution_due_at: Optional[datetime] = None

    # Collaborator-owned fields used by monitoring and automation
    first_response_at: Optional[datetime] = None
    assignee_id: Optional[Any] = None
    requester_id: Optional[Any] = None
    subject: str = ""
    category: Optional[str] = None
    tags: tuple = ()

    def __post_init__(self):
        self.created_at = ensure_aware(self.created_at)
        self.updated_at = ensure_aware(self.updated_at) or self.created_at
        self.response_due_at = ensure_aware(self.response_due_at)
        self.solution_due_at = ensure_aware(self.solution_due_at)
        self.first_response_at = ensure_aware(self.first_response_at)
        self.tags = tuple(self.tags or ())

        # skewed collaborator clocks are clamped, not rejected
        if self.updated_at < self.created_at:
            self.updated_at = self.created_at

    @property
    def has_sla(self) -> bool:
        return self.solution_due_at is not None

    @property
    def response_met(self) -> bool:
        """First response happened on time."""
        if self.first_response_at is None or self.response_due_at is None:
            return False
        return self.first_response_at <= self.response_due_at

    def as_fields(self) -> dict:
        """Flat field map used by automation conditions."""
        fields = asdict(self)
        fields["tags"] = list(self.tags)
        return fields


@dataclass
class SLAAnnotation:
    """
    Internal note appended to a ticket by the engine.

    event_kind and due_type are stored as structured columns so that
    deduplication never has to pattern-match the note text.
    """

    ticket_id: Any
    content: str
    is_internal: bool = True
    event_kind: Optional[str] = None
    due_type: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[Any] = None
