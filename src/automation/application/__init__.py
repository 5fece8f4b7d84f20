"""
Automation Application Layer
=============================

Trigger evaluation, action execution, the time-based scan and the
ticket-event fan-out.
"""

from automation.application.dto import (
    EvaluateTriggersRequest,
    EvaluateTriggersResponse,
    TimeBasedScanResponse,
)
from automation.application.services import (
    ITriggerRepository,
    IEmailSender,
    ActionReport,
    ActionExecutor,
    AutomationTriggerEvaluator,
    TimeBasedScanSummary,
    TimeBasedAutomationService,
    TicketEventFanOut,
)

__all__ = [
    # DTOs
    "EvaluateTriggersRequest",
    "EvaluateTriggersResponse",
    "TimeBasedScanResponse",
    # Services
    "ActionReport",
    "ActionExecutor",
    "AutomationTriggerEvaluator",
    "TimeBasedScanSummary",
    "TimeBasedAutomationService",
    "TicketEventFanOut",
    # Collaborator Interfaces
    "ITriggerRepository",
    "IEmailSender",
]
