"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, List, Optional, Literal
from datetime import datetime

from sla.domain import DeadlineResult, Ticket


# ========== Type Aliases for Literals ==========
PriorityStr = Literal["low", "medium", "high", "urgent", "critical"]
DueTypeStr = Literal["response", "solution"]


# ========== Request DTOs ==========

class TicketPayloadDTO(BaseModel):
    """A ticket as sent by the ticket-management layer."""
    id: Any = Field(..., description="Ticket ID")
    priority: PriorityStr = Field(..., description="Ticket priority")
    status: str = Field(..., min_length=1, description="Ticket status")
    created_at: datetime = Field(..., description="Ticket creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="Last update timestamp")
    contract_id: Optional[Any] = None
    response_due_at: Optional[datetime] = None
    solution_due_at: Optional[datetime] = None
    first_response_at: Optional[datetime] = None
    assignee_id: Optional[Any] = None
    requester_id: Optional[Any] = None
    subject: str = ""
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("updated_at")
    @classmethod
    def validate_updated_at(cls, v: Optional[datetime], info) -> Optional[datetime]:
        """Ensure updated_at is not before created_at."""
        created = info.data.get("created_at")
        if v is not None and created is not None and v < created:
            raise ValueError("updated_at cannot be before created_at")
        return v

    def to_domain(self) -> Ticket:
        """Convert to domain entity."""
        data = self.model_dump()
        data["tags"] = tuple(data["tags"])
        return Ticket(**data)


# ========== Response DTOs ==========

class DeadlineResponse(BaseModel):
    """Result of applying deadlines to a ticket."""
    ticket_id: Any
    applied: bool = Field(..., description="False when no SLA applies to the ticket")
    response_due_at: Optional[datetime] = None
    solution_due_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, ticket_id: Any, result: Optional[DeadlineResult]) -> "DeadlineResponse":
        if result is None:
            return cls(ticket_id=ticket_id, applied=False)
        return cls(ticket_id=ticket_id, applied=True, **result.to_fields())


class ScanSummaryResponse(BaseModel):
    """Counters of one monitor scan."""
    run_id: Optional[str] = None
    skipped: bool = Field(default=False, description="True if a scan was already running")
    scanned: int = 0
    excluded: int = 0
    on_track: int = 0
    warnings: int = 0
    breaches: int = 0
    deduplicated: int = 0
    failed: int = 0
    duration_seconds: float = 0.0


class MonitorHealthResponse(BaseModel):
    """Scheduler state of the SLA monitor."""
    is_scheduled: bool
    is_currently_running: bool
    interval_seconds: Optional[int] = None
    last_started_at: Optional[datetime] = None
    last_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None


class SLAStatsResponse(BaseModel):
    """Deadline counters across all tickets."""
    total: int = Field(..., description="All tickets")
    with_sla: int = Field(..., description="Tickets with a solution deadline")
    at_risk: int = Field(..., description="Open tickets due within the warning window, breached included")
    breached: int = Field(..., description="Open tickets past their solution deadline")
