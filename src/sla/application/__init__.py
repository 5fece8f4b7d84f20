"""
SLA Application Layer
======================

Application layer for SLA monitoring module.

Contains:
- Services: calendar resolver, policy lookup, deadline applier, monitor, dispatcher, engine facade
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and collaborator interfaces,
but not on concrete infrastructure implementations.
"""

from sla.application.dto import (
    TicketPayloadDTO,
    DeadlineResponse,
    ScanSummaryResponse,
    MonitorHealthResponse,
    SLAStatsResponse,
)
from sla.application.services import (
    ITicketGateway,
    ISLAConfigProvider,
    ISLANotifier,
    WorkCalendarResolver,
    SLAPolicyLookup,
    DeadlineApplier,
    ScanSummary,
    SLAStats,
    EscalationDispatcher,
    SLAMonitorService,
    SLAEngine,
    format_duration,
)

__all__ = [
    # DTOs
    "TicketPayloadDTO",
    "DeadlineResponse",
    "ScanSummaryResponse",
    "MonitorHealthResponse",
    "SLAStatsResponse",
    # Services
    "WorkCalendarResolver",
    "SLAPolicyLookup",
    "DeadlineApplier",
    "ScanSummary",
    "SLAStats",
    "EscalationDispatcher",
    "SLAMonitorService",
    "SLAEngine",
    "format_duration",
    # Collaborator Interfaces
    "ITicketGateway",
    "ISLAConfigProvider",
    "ISLANotifier",
]
