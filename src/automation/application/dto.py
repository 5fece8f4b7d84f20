"""
Automation Application DTOs
============================

Pydantic models for the automation API layer.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, model_validator

from sla.application.dto import TicketPayloadDTO

TriggerTypeStr = Literal[
    "ticket_created", "ticket_updated", "status_changed",
    "priority_changed", "assigned", "comment_added",
]


class EvaluateTriggersRequest(BaseModel):
    """Ask the engine to evaluate triggers for a ticket event."""
    trigger_type: TriggerTypeStr = Field(..., description="Event type to evaluate")
    ticket: TicketPayloadDTO = Field(..., description="Ticket after the event")
    previous: Optional[TicketPayloadDTO] = Field(
        None, description="Ticket before the event, for change-based trigger types"
    )
    user_id: Optional[Any] = None

    @model_validator(mode="after")
    def check_same_ticket(self) -> "EvaluateTriggersRequest":
        if self.previous is not None and self.previous.id != self.ticket.id:
            raise ValueError("previous must describe the same ticket")
        return self


class EvaluateTriggersResponse(BaseModel):
    trigger_type: str
    ticket_id: Any
    fired: int = Field(..., description="Number of triggers whose conditions matched")


class TimeBasedScanResponse(BaseModel):
    """Counters of one time-based automation scan."""
    run_id: Optional[str] = None
    skipped: bool = False
    triggers: int = 0
    tickets: int = 0
    executions: int = 0
    failed_actions: int = 0
    duration_seconds: float = 0.0
