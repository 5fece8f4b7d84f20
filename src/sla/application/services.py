"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain objects and the ticket-management collaborator.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (gateway, config provider), not concrete implementations
"""

import logging
import time as time_module
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import AnnotationKind, ClassificationKind
from core import (
    ComputationOverflow,
    ConfigurationMissing,
    ExternalServiceException,
    ResourceNotFoundException,
)
from sla.domain import (
    ClassificationEvent,
    ContractSLAProfile,
    DeadlineResult,
    SLACalculator,
    SLAClassifier,
    SLAEngineConfig,
    SlaPolicy,
    StatusPolicy,
    Ticket,
    WorkCalendar,
)

logger = logging.getLogger(__name__)


# ========== Collaborator Interfaces (Dependency Inversion) ==========

class ITicketGateway(ABC):
    """Interface to the ticket-management collaborator."""

    @abstractmethod
    async def get_ticket(self, ticket_id: Any) -> Optional[Ticket]:
        """Get ticket by ID."""

    @abstractmethod
    async def update_ticket_fields(self, ticket_id: Any, fields: Dict[str, Any]) -> None:
        """Persist a partial update of ticket fields atomically."""

    @abstractmethod
    async def append_annotation(
        self,
        ticket_id: Any,
        content: str,
        internal: bool = True,
        event_kind: Optional[str] = None,
        due_type: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> None:
        """Append a note to the ticket."""

    @abstractmethod
    async def has_recent_annotation(
        self,
        ticket_id: Any,
        event_kind: str,
        since: datetime
    ) -> bool:
        """True if an annotation of event_kind was created at or after since."""

    @abstractmethod
    async def list_non_terminal_tickets_with_solution_deadline_before(
        self,
        instant: datetime
    ) -> List[Ticket]:
        """Tickets with a solution deadline <= instant and a non-terminal status."""

    @abstractmethod
    async def list_all_non_terminal_tickets(self) -> List[Ticket]:
        """Every ticket whose status is not terminal."""

    @abstractmethod
    async def get_sla_stats(self, now: datetime, warning_until: datetime) -> "SLAStats":
        """
        Aggregate deadline counters over all tickets.

        at_risk and breached only count non-terminal tickets whose solution
        deadline is at or before warning_until and now respectively.
        """

    @abstractmethod
    async def get_contract_calendar_and_policies(
        self,
        contract_id: Any
    ) -> Optional[ContractSLAProfile]:
        """Calendar and SLA policies of a contract, None if the contract is unknown."""

    @abstractmethod
    async def get_status_policy(self, status_id: str) -> Optional[StatusPolicy]:
        """Pause/terminal flags of a status, None if the store has no entry."""

    @abstractmethod
    async def add_tag(self, ticket_id: Any, tag: str) -> None:
        """Attach a tag to the ticket, creating it if needed."""

    @abstractmethod
    async def remove_tag(self, ticket_id: Any, tag: str) -> None:
        """Detach a tag from the ticket."""

    @abstractmethod
    async def assign_ticket(self, ticket_id: Any, user_id: Any) -> None:
        """Assign the ticket to an existing user."""


class ISLAConfigProvider(ABC):
    """Interface for SLA engine configuration access."""

    @abstractmethod
    def get_config(self) -> SLAEngineConfig:
        """Get current SLA engine configuration."""


class ISLANotifier(ABC):
    """Interface for outbound SLA alerts."""

    @abstractmethod
    async def notify(self, event: ClassificationEvent, ticket: Optional[Ticket] = None) -> bool:
        """Send an alert for a classification event. Returns True when delivered."""


# ========== Helpers ==========

def format_duration(delta: timedelta) -> str:
    """Human readable duration, e.g. '1d 2h 5m'."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    days, rest = divmod(total_minutes, 60 * 24)
    hours, minutes = divmod(rest, 60)

    parts = []
    if days:
        parts.append(f"{days}d")
    if hours:
        parts.append(f"{hours}h")
    if minutes or not parts:
        parts.append(f"{minutes}m")
    return " ".join(parts)


# ========== Application Services ==========

class WorkCalendarResolver:
    """
    Resolves the calendar that applies to a contract.

    The contract's own calendar wins; otherwise the configured fallback
    calendar is used. A calendar with no working day cannot produce a
    deadline and is treated as missing.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        config_provider: ISLAConfigProvider,
        default_timezone: str = "UTC"
    ):
        self._gateway = gateway
        self._config_provider = config_provider
        self._default_timezone = default_timezone

    async def resolve(self, contract_id: Any) -> WorkCalendar:
        profile = await self._gateway.get_contract_calendar_and_policies(contract_id)
        return self.from_profile(contract_id, profile)

    def from_profile(
        self,
        contract_id: Any,
        profile: Optional[ContractSLAProfile]
    ) -> WorkCalendar:
        if profile is not None and profile.calendar is not None and profile.calendar.has_working_day:
            return profile.calendar

        fallback = self._config_provider.get_config().fallback_calendar
        if fallback is not None:
            calendar = fallback.to_calendar(self._default_timezone)
            if calendar.has_working_day:
                return calendar

        raise ConfigurationMissing("calendar", contract_id)


class SLAPolicyLookup:
    """Pure lookup of the SLA policy for (contract, priority)."""

    def __init__(self, gateway: ITicketGateway):
        self._gateway = gateway

    async def resolve(self, contract_id: Any, priority: str) -> Optional[SlaPolicy]:
        """None means the ticket has no contractual SLA."""
        if contract_id is None:
            return None
        profile = await self._gateway.get_contract_calendar_and_policies(contract_id)
        return self.from_profile(profile, priority)

    @staticmethod
    def from_profile(profile: Optional[ContractSLAProfile], priority: str) -> Optional[SlaPolicy]:
        if profile is None:
            return None
        return profile.policy_for(priority)


class DeadlineApplier:
    """
    Computes and persists response/solution deadlines for one ticket.

    Idempotent: the result depends only on created_at, priority and the
    contract's policy and calendar, so calling it again recomputes and
    overwrites the same values.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        calendar_resolver: WorkCalendarResolver,
        policy_lookup: SLAPolicyLookup,
        iteration_factor: int = 10
    ):
        self._gateway = gateway
        self._calendar_resolver = calendar_resolver
        self._policy_lookup = policy_lookup
        self._iteration_factor = iteration_factor

    async def apply_deadlines(self, ticket_id: Any) -> Optional[DeadlineResult]:
        """
        Apply deadlines to a ticket.

        Returns:
            DeadlineResult, or None when no SLA applies or the computation failed

        Raises:
            ResourceNotFoundException: if the ticket does not exist
            PersistenceFailure: if the deadlines could not be stored
        """
        ticket = await self._gateway.get_ticket(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        try:
            result = await self._compute(ticket)
        except ConfigurationMissing as e:
            logger.info(
                "No SLA applicable to ticket",
                extra={"ticket_id": ticket.id, "contract_id": e.contract_id, "missing": e.what}
            )
            return None
        except ComputationOverflow as e:
            logger.error(
                f"Deadline computation overflow: {e.message}",
                extra={"ticket_id": ticket.id, **e.details}
            )
            return None

        await self._gateway.update_ticket_fields(ticket.id, result.to_fields())

        logger.info(
            "Applied SLA deadlines",
            extra={
                "ticket_id": ticket.id,
                "priority": ticket.priority,
                "response_due_at": result.response_due_at.isoformat(),
                "solution_due_at": result.solution_due_at.isoformat(),
            }
        )
        return result

    async def _compute(self, ticket: Ticket) -> DeadlineResult:
        if ticket.contract_id is None:
            raise ConfigurationMissing("contract", None)
        if not ticket.priority:
            raise ConfigurationMissing("priority", ticket.contract_id)

        policy = await self._policy_lookup.resolve(ticket.contract_id, ticket.priority)
        if policy is None:
            raise ConfigurationMissing(f"sla policy for priority '{ticket.priority}'", ticket.contract_id)

        calendar = await self._calendar_resolver.resolve(ticket.contract_id)
        return SLACalculator.calculate_deadlines(
            ticket.created_at, policy, calendar, self._iteration_factor
        )


@dataclass
class ScanSummary:
    """Counters of one monitor scan."""
    run_id: Optional[str] = None
    scanned: int = 0
    excluded: int = 0
    on_track: int = 0
    warnings: int = 0
    breaches: int = 0
    deduplicated: int = 0
    failed: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SLAStats:
    """Point-in-time deadline counters."""
    total: int = 0
    with_sla: int = 0
    at_risk: int = 0
    breached: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class EscalationDispatcher:
    """
    Executes the side effects of a warning or breach exactly once per event.

    Before acting, looks for an annotation of the same event kind on the
    same ticket within the dedup window and skips if one exists.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        config_provider: ISLAConfigProvider,
        notifier: Optional[ISLANotifier] = None
    ):
        self._gateway = gateway
        self._config_provider = config_provider
        self._notifier = notifier

    @staticmethod
    def event_kind_for(event: ClassificationEvent) -> str:
        return AnnotationKind.SLA_BREACH if event.is_breach else AnnotationKind.SLA_WARNING

    @staticmethod
    def describe(event: ClassificationEvent) -> str:
        """Annotation text for an event."""
        due_at = event.due_at.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        if event.is_breach:
            return (
                f"SLA BREACH: {event.due_type} deadline ({due_at}) exceeded by "
                f"{format_duration(event.overdue)}."
            )
        return (
            f"SLA WARNING: {event.due_type} deadline ({due_at}) is due in "
            f"{format_duration(event.time_left)}."
        )

    async def dispatch(
        self,
        event: ClassificationEvent,
        ticket: Optional[Ticket] = None
    ) -> bool:
        """
        Dispatch a classification event.

        On a breach the priority is raised before anything is annotated, so
        a failed update leaves no breach note behind and the next scan
        retries the whole event.

        Returns:
            True if side effects were executed, False if deduplicated
        """
        config = self._config_provider.get_config()
        event_kind = self.event_kind_for(event)
        since = event.detected_at - config.dedup_window

        if await self._gateway.has_recent_annotation(event.ticket_id, event_kind, since):
            logger.debug(
                "Skipping duplicate SLA event",
                extra={"ticket_id": event.ticket_id, "event_kind": event_kind}
            )
            return False

        escalated_from = None
        if event.is_breach and config.escalation.enabled:
            ticket, escalated_from = await self._raise_priority(event, ticket, config)

        await self._gateway.append_annotation(
            event.ticket_id,
            self.describe(event),
            internal=True,
            event_kind=event_kind,
            due_type=event.due_type,
            created_at=event.detected_at,
        )

        if escalated_from is not None:
            await self._gateway.append_annotation(
                event.ticket_id,
                f"Priority escalated from {escalated_from} to {ticket.priority} "
                f"after {event.due_type} SLA breach.",
                internal=True,
                event_kind=AnnotationKind.SLA_ESCALATION,
                due_type=event.due_type,
                created_at=event.detected_at,
            )

        logger.info(
            f"SLA {event.kind} dispatched",
            extra={
                "ticket_id": event.ticket_id,
                "kind": event.kind,
                "due_type": event.due_type,
                "due_at": event.due_at.isoformat(),
            }
        )

        await self._notify(event, ticket)
        return True

    async def _raise_priority(
        self,
        event: ClassificationEvent,
        ticket: Optional[Ticket],
        config: SLAEngineConfig
    ) -> Tuple[Optional[Ticket], Optional[str]]:
        """Returns the ticket and its previous priority, or None if unchanged."""
        if ticket is None:
            ticket = await self._gateway.get_ticket(event.ticket_id)
        if ticket is None:
            return None, None

        target = config.max_priority
        if config.priority_rank(ticket.priority) >= config.priority_rank(target):
            return ticket, None

        previous = ticket.priority
        await self._gateway.update_ticket_fields(ticket.id, {"priority": target})
        ticket.priority = target

        logger.warning(
            "Ticket escalated after SLA breach",
            extra={"ticket_id": ticket.id, "from_priority": previous, "to_priority": target}
        )
        return ticket, previous

    async def _notify(self, event: ClassificationEvent, ticket: Optional[Ticket]) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify(event, ticket)
        except ExternalServiceException as e:
            logger.warning(
                f"SLA alert not delivered: {e.message}",
                extra={"ticket_id": event.ticket_id, "service": e.service_name}
            )


class SLAMonitorService:
    """
    Scans at-risk tickets, classifies them and dispatches warnings/breaches.

    Classification is recomputed on every scan. A failure on one ticket
    is logged and counted; the rest of the batch continues.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        config_provider: ISLAConfigProvider,
        dispatcher: EscalationDispatcher
    ):
        self._gateway = gateway
        self._config_provider = config_provider
        self._dispatcher = dispatcher

    async def scan_once(
        self,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None
    ) -> ScanSummary:
        """
        Run one scan.

        Raises:
            PersistenceFailure: if the at-risk ticket list cannot be loaded
        """
        started = time_module.perf_counter()
        config = self._config_provider.get_config()
        now = now or datetime.now(timezone.utc)
        summary = ScanSummary(run_id=run_id)

        tickets = await self._gateway.list_non_terminal_tickets_with_solution_deadline_before(
            now + config.warning_window
        )
        status_policies: Dict[str, Optional[StatusPolicy]] = {}

        for ticket in tickets:
            summary.scanned += 1
            try:
                await self._process(ticket, now, config, status_policies, summary)
            except Exception:
                summary.failed += 1
                logger.exception(
                    "SLA evaluation failed for ticket",
                    extra={"ticket_id": ticket.id, "run_id": run_id}
                )

        summary.duration_seconds = round(time_module.perf_counter() - started, 3)
        logger.info("SLA monitor scan finished", extra=summary.to_dict())
        return summary

    async def stats(self, now: Optional[datetime] = None) -> SLAStats:
        """
        Deadline counters for dashboards.

        Raises:
            PersistenceFailure: if the counters cannot be read
        """
        config = self._config_provider.get_config()
        now = now or datetime.now(timezone.utc)
        return await self._gateway.get_sla_stats(now, now + config.warning_window)

    async def _process(
        self,
        ticket: Ticket,
        now: datetime,
        config: SLAEngineConfig,
        status_policies: Dict[str, Optional[StatusPolicy]],
        summary: ScanSummary
    ) -> None:
        if ticket.status not in status_policies:
            status_policies[ticket.status] = await self._status_policy(ticket.status, config)

        classification = SLAClassifier.classify(
            ticket, now, config.warning_window, status_policies[ticket.status]
        )

        if classification.kind == ClassificationKind.EXCLUDED:
            summary.excluded += 1
            return
        if classification.kind == ClassificationKind.ON_TRACK:
            summary.on_track += 1
            return

        if classification.kind == ClassificationKind.BREACH:
            summary.breaches += 1
        else:
            summary.warnings += 1

        event = classification.to_event(ticket.id, now)
        if not await self._dispatcher.dispatch(event, ticket):
            summary.deduplicated += 1

    async def _status_policy(
        self,
        status_id: str,
        config: SLAEngineConfig
    ) -> Optional[StatusPolicy]:
        policy = await self._gateway.get_status_policy(status_id)
        if policy is not None:
            return policy
        return config.status_policy(status_id)


class SLAEngine:
    """
    Facade exposed to the ticket-management layer and the HTTP interface.

    Automation collaborators are optional so the engine can run
    deadline-only.
    """

    def __init__(
        self,
        deadline_applier: DeadlineApplier,
        monitor: SLAMonitorService,
        trigger_evaluator: Optional[Any] = None,
        event_fan_out: Optional[Any] = None,
        monitor_job: Optional[Any] = None
    ):
        self._deadline_applier = deadline_applier
        self._monitor = monitor
        self._trigger_evaluator = trigger_evaluator
        self._event_fan_out = event_fan_out
        self._monitor_job = monitor_job

    def attach_monitor_job(self, job: Any) -> None:
        self._monitor_job = job

    async def apply_deadlines(self, ticket_id: Any) -> Optional[DeadlineResult]:
        return await self._deadline_applier.apply_deadlines(ticket_id)

    async def run_monitor_scan_once(self) -> Optional[ScanSummary]:
        """Run a scan now. Returns None if a scheduled scan is already running."""
        if self._monitor_job is not None:
            return await self._monitor_job.run_once()
        return await self._monitor.scan_once()

    def get_monitor_health(self) -> dict:
        if self._monitor_job is None:
            return {"is_scheduled": False, "is_currently_running": False}
        return self._monitor_job.health()

    async def get_sla_stats(self, now: Optional[datetime] = None) -> SLAStats:
        return await self._monitor.stats(now)

    async def evaluate_triggers(
        self,
        trigger_type: str,
        ticket: Ticket,
        change: Optional[Any] = None
    ) -> int:
        """Evaluate active triggers of a type. Returns the number of triggers that fired."""
        if self._trigger_evaluator is None:
            return 0
        return await self._trigger_evaluator.evaluate(trigger_type, ticket, change)

    async def on_ticket_created(self, ticket_id: Any) -> Optional[DeadlineResult]:
        """
        Follow-up after ticket creation has committed.

        Deadline failures never propagate; the ticket simply has no
        countdown until a later retry succeeds.
        """
        result = None
        try:
            result = await self.apply_deadlines(ticket_id)
        except ResourceNotFoundException:
            raise
        except Exception:
            logger.exception("Deadline application failed", extra={"ticket_id": ticket_id})

        if self._event_fan_out is not None:
            await self._event_fan_out.on_ticket_created(ticket_id)
        return result

    async def on_ticket_updated(self, ticket: Ticket, previous: Ticket, user_id: Any = None) -> int:
        if self._event_fan_out is None:
            return 0
        return await self._event_fan_out.on_ticket_updated(ticket, previous, user_id)

    async def on_comment_added(self, ticket: Ticket, user_id: Any = None) -> int:
        if self._event_fan_out is None:
            return 0
        return await self._event_fan_out.on_comment_added(ticket, user_id)
