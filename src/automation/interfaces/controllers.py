"""
Automation Controllers (API Routes)
====================================

Entry points for the ticket-management layer: evaluate triggers after a
ticket event, and run the time-based scan on demand.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from automation.application import (
    EvaluateTriggersRequest,
    EvaluateTriggersResponse,
    TimeBasedScanResponse,
)
from automation.domain import ChangeContext
from sla.application import SLAEngine
from sla.interfaces.controllers import get_sla_engine
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/automation", tags=["Automation"])


def get_automation_job(request: Request):
    """Get the periodic time-based automation job wired at startup."""
    job = getattr(request.app.state, "automation_job", None)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Time-based automation not initialized"
        )
    return job


@router.post(
    "/evaluate",
    response_model=EvaluateTriggersResponse,
    summary="Evaluate automation triggers for a ticket event",
    description="""
    Evaluate all active triggers of `trigger_type` against the ticket and
    run the actions of every trigger whose conditions match. Pass
    `previous` for change-based types so conditions can read
    `previous.<field>`.
    """
)
async def evaluate_triggers(
    request: EvaluateTriggersRequest,
    engine: SLAEngine = Depends(get_sla_engine)
) -> EvaluateTriggersResponse:
    ticket = request.ticket.to_domain()
    change = None
    if request.previous is not None:
        change = ChangeContext(
            before=request.previous.to_domain().as_fields(),
            after=ticket.as_fields(),
            user_id=request.user_id,
        )

    fired = await engine.evaluate_triggers(request.trigger_type, ticket, change)
    return EvaluateTriggersResponse(
        trigger_type=request.trigger_type,
        ticket_id=ticket.id,
        fired=fired,
    )


@router.post(
    "/time-based/run",
    response_model=TimeBasedScanResponse,
    summary="Run the time-based automation scan once",
    description="Returns `skipped: true` when a scheduled scan is already running."
)
async def run_time_based_scan(job=Depends(get_automation_job)) -> TimeBasedScanResponse:
    summary = await job.run_once()
    if summary is None:
        return TimeBasedScanResponse(skipped=True)
    return TimeBasedScanResponse(**summary.to_dict())


automation_router = router
