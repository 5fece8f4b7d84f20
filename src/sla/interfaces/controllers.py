"""
SLA Controllers (API Routes)
=============================

FastAPI routes for the SLA engine.

Controllers are thin - they delegate to the SLAEngine facade stored on
app.state during startup.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from sla.application import (
    DeadlineResponse,
    MonitorHealthResponse,
    ScanSummaryResponse,
    SLAEngine,
    SLAStatsResponse,
)
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Engine"])


# ========== Example payloads for Swagger ==========

DEADLINE_RESPONSE_EXAMPLE = {
    "ticket_id": 42,
    "applied": True,
    "response_due_at": "2024-01-15T10:00:00Z",
    "solution_due_at": "2024-01-15T17:00:00Z"
}

SCAN_SUMMARY_EXAMPLE = {
    "run_id": "SLA-1705312800-a1b2c3",
    "skipped": False,
    "scanned": 12,
    "excluded": 2,
    "on_track": 3,
    "warnings": 4,
    "breaches": 3,
    "deduplicated": 5,
    "failed": 0,
    "duration_seconds": 0.184
}


# ========== Dependencies ==========

def get_sla_engine(request: Request) -> SLAEngine:
    """Get the SLA engine wired at startup."""
    engine = getattr(request.app.state, "sla_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="SLA engine not initialized"
        )
    return engine


# ========== Route Handlers ==========

@router.post(
    "/tickets/{ticket_id}/deadlines",
    response_model=DeadlineResponse,
    summary="Apply SLA deadlines to a ticket",
    description="""
    Compute the response and solution deadlines of a ticket from its
    contract's SLA policy and business calendar, and store them.

    Idempotent: calling again recomputes the same values, or overwrites
    them after the contract linkage changed. When no policy or calendar
    applies, `applied` is false and the deadlines stay empty.
    """,
    responses={
        200: {
            "description": "Deadlines applied (or no SLA applicable)",
            "content": {"application/json": {"example": DEADLINE_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Ticket not found"}
    }
)
async def apply_deadlines(
    ticket_id: int,
    engine: SLAEngine = Depends(get_sla_engine)
) -> DeadlineResponse:
    result = await engine.apply_deadlines(ticket_id)
    return DeadlineResponse.from_result(ticket_id, result)


@router.post(
    "/monitor/run",
    response_model=ScanSummaryResponse,
    summary="Run the SLA monitor once",
    description="""
    Trigger one monitor scan now. If a scheduled scan is already running
    the request does not start a second one and returns `skipped: true`.
    """,
    responses={
        200: {
            "description": "Scan finished or skipped",
            "content": {"application/json": {"example": SCAN_SUMMARY_EXAMPLE}}
        }
    }
)
async def run_monitor_scan(
    engine: SLAEngine = Depends(get_sla_engine)
) -> ScanSummaryResponse:
    summary = await engine.run_monitor_scan_once()
    if summary is None:
        return ScanSummaryResponse(skipped=True)
    return ScanSummaryResponse(**summary.to_dict())


@router.get(
    "/monitor/health",
    response_model=MonitorHealthResponse,
    summary="SLA monitor scheduler state"
)
async def monitor_health(
    engine: SLAEngine = Depends(get_sla_engine)
) -> MonitorHealthResponse:
    return MonitorHealthResponse(**engine.get_monitor_health())


@router.get(
    "/stats",
    response_model=SLAStatsResponse,
    summary="SLA deadline counters",
    description="""
    Count all tickets, those with a solution deadline, and the open ones
    that are inside the warning window or already past their deadline.
    """
)
async def sla_stats(
    engine: SLAEngine = Depends(get_sla_engine)
) -> SLAStatsResponse:
    stats = await engine.get_sla_stats()
    return SLAStatsResponse(**stats.to_dict())


sla_router = router
