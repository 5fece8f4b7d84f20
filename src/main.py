"""
SLA Engine - Main Application
==============================

SLA deadline engine, monitoring/escalation and automation triggers for a
support-ticket platform.

Modules:
- SLA: business-hours deadlines, periodic breach/warning monitor, escalation
- Automation: administrator-defined triggers evaluated on ticket events and on a timer

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, value objects and pure business logic
- Infrastructure: Database, config watcher, Slack, scheduler
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# Configuration and Core
from config import Settings, settings
from core import ApplicationException

# Infrastructure
from infrastructure.database import (
    init_database,
    close_database,
    create_tables,
    get_session_factory,
)

# SLA Module
from sla.application import (
    DeadlineApplier,
    EscalationDispatcher,
    ISLAConfigProvider,
    ISLANotifier,
    SLAEngine,
    SLAMonitorService,
    SLAPolicyLookup,
    WorkCalendarResolver,
)
from sla.infrastructure import (
    PeriodicJob,
    SLAConfigManager,
    SQLAlchemyTicketGateway,
    SlackClient,
    YAMLConfigProvider,
)

# Automation Module
from automation.application import (
    ActionExecutor,
    AutomationTriggerEvaluator,
    TicketEventFanOut,
    TimeBasedAutomationService,
)
from automation.infrastructure import SQLAlchemyTriggerRepository

# Module Routers
from sla.interfaces import sla_router
from automation.interfaces import automation_router

# Logging and middleware
from shared.infrastructure.logging import setup_logging, get_logger
from shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)

logger = get_logger(__name__)


@dataclass
class EngineComponents:
    """Everything wired at startup, kept together for shutdown and health."""
    engine: SLAEngine
    monitor: SLAMonitorService
    time_based: TimeBasedAutomationService
    monitor_job: PeriodicJob
    automation_job: PeriodicJob


def build_components(
    session_factory: async_sessionmaker[AsyncSession],
    config_provider: ISLAConfigProvider,
    app_settings: Settings,
    notifier: Optional[ISLANotifier] = None
) -> EngineComponents:
    """Wire gateways, services and periodic jobs."""
    gateway = SQLAlchemyTicketGateway(
        session_factory, config_provider, app_settings.default_timezone
    )
    trigger_repo = SQLAlchemyTriggerRepository(session_factory)

    trigger_evaluator = AutomationTriggerEvaluator(trigger_repo, ActionExecutor(gateway))
    fan_out = TicketEventFanOut(gateway, trigger_evaluator)
    time_based = TimeBasedAutomationService(gateway, trigger_repo, trigger_evaluator)

    dispatcher = EscalationDispatcher(gateway, config_provider, notifier)
    monitor = SLAMonitorService(gateway, config_provider, dispatcher)
    applier = DeadlineApplier(
        gateway,
        WorkCalendarResolver(gateway, config_provider, app_settings.default_timezone),
        SLAPolicyLookup(gateway),
        iteration_factor=app_settings.deadline_iteration_factor,
    )

    monitor_job = PeriodicJob(
        name="sla_monitor",
        func=lambda run_id: monitor.scan_once(run_id=run_id),
        interval_seconds=app_settings.sla_monitor_interval_seconds,
        run_id_prefix="SLA",
        initial_delay_seconds=app_settings.scheduler_initial_delay_seconds,
    )
    automation_job = PeriodicJob(
        name="time_based_automation",
        func=lambda run_id: time_based.scan_once(run_id=run_id),
        interval_seconds=app_settings.automation_interval_seconds,
        run_id_prefix="AUTO",
        initial_delay_seconds=app_settings.scheduler_initial_delay_seconds,
    )

    engine = SLAEngine(
        deadline_applier=applier,
        monitor=monitor,
        trigger_evaluator=trigger_evaluator,
        event_fan_out=fan_out,
        monitor_job=monitor_job,
    )
    return EngineComponents(
        engine=engine,
        monitor=monitor,
        time_based=time_based,
        monitor_job=monitor_job,
        automation_job=automation_job,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Load SLA engine configuration and watch it
    4. Wire engine and start periodic jobs

    SHUTDOWN:
    1. Stop periodic jobs (in-flight runs finish)
    2. Stop config watcher
    3. Close Slack client and database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA Engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Loading SLA configuration")
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    slack_client = SlackClient() if settings.slack_webhook_url else None

    components = build_components(
        get_session_factory(),
        YAMLConfigProvider(config_manager),
        settings,
        notifier=slack_client,
    )

    if settings.scheduler_enabled:
        components.monitor_job.start()
        components.automation_job.start()
    else:
        logger.info("Scheduler disabled; scans run only on demand")

    app.state.settings = settings
    app.state.sla_engine = components.engine
    app.state.automation_job = components.automation_job
    app.state.components = components

    logger.info("SLA Engine started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA Engine")

    components.monitor_job.stop()
    components.automation_job.stop()
    config_manager.stop_watching()

    if slack_client is not None:
        await slack_client.close()

    await close_database()

    logger.info("SLA Engine shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="SLA Engine API",
    description="""
    ## SLA Deadline Engine, Monitoring and Automation

    - `POST /sla/tickets/{id}/deadlines` - Compute and store business-hours deadlines
    - `POST /sla/monitor/run` - Run one SLA monitor scan
    - `GET /sla/monitor/health` - Monitor scheduler state
    - `POST /automation/evaluate` - Evaluate triggers for a ticket event
    - `POST /automation/time-based/run` - Run one time-based automation scan
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)
app.include_router(automation_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports scheduler state of both periodic jobs.
    """
    components: Optional[EngineComponents] = getattr(request.app.state, "components", None)
    checks = {
        "sla_engine": "initialized" if components else "not_initialized",
        "sla_monitor": components.monitor_job.health() if components else None,
        "time_based_automation": components.automation_job.health() if components else None,
    }

    return {
        "status": "healthy" if components else "starting",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
