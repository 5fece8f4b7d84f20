"""
Automation Application Services
================================

Evaluates administrator-defined triggers and executes their actions
through the ticket-management collaborator. The services own no ticket
state of their own.
"""

import logging
import time as time_module
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import (
    ActionType,
    AnnotationKind,
    TriggerType,
    VALID_PRIORITIES,
)
from core import (
    ActionExecutionFailure,
    ApplicationException,
    ResourceNotFoundException,
    ValidationException,
)
from automation.domain import (
    AutomationTrigger,
    ChangeContext,
    ConditionEvaluator,
    TriggerAction,
    time_condition_matches,
)
from sla.application import ITicketGateway
from sla.domain import Ticket

logger = logging.getLogger(__name__)


# ========== Collaborator Interfaces ==========

class ITriggerRepository(ABC):
    """Interface for read-only trigger access."""

    @abstractmethod
    async def list_active(self, trigger_type: str) -> List[AutomationTrigger]:
        """Active triggers of one type, in a stable order."""


class IEmailSender(ABC):
    """Interface for outbound email used by the send_email action."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """Send or enqueue an email."""


# ========== Action execution ==========

def _param(action: TriggerAction, *names: str, default: Any = None) -> Any:
    """First present parameter among snake_case and legacy camelCase names."""
    for name in names:
        value = action.get(name)
        if value is not None and value != "":
            return value
    return default


@dataclass
class ActionReport:
    """Outcome of running one trigger's action list."""
    trigger_id: Any
    ticket_id: Any
    executed: int = 0
    skipped: int = 0
    failed: int = 0


class ActionExecutor:
    """
    Maps action types to capability calls on the ticket gateway.

    execute() returns False when required parameters are missing (the
    action is skipped) and raises ActionExecutionFailure when the
    action could not be carried out.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        email_sender: Optional[IEmailSender] = None
    ):
        self._gateway = gateway
        self._email_sender = email_sender
        self._handlers: Dict[str, Callable[[TriggerAction, Ticket], Awaitable[bool]]] = {
            ActionType.ADD_COMMENT: self._add_comment,
            ActionType.CHANGE_PRIORITY: self._change_priority,
            ActionType.CHANGE_STATUS: self._change_status,
            ActionType.ASSIGN_TO: self._assign_to,
            ActionType.ADD_TAG: self._add_tag,
            ActionType.REMOVE_TAG: self._remove_tag,
            ActionType.SET_CATEGORY: self._set_category,
            ActionType.SEND_EMAIL: self._send_email,
        }

    @property
    def supported_actions(self) -> List[str]:
        return list(self._handlers)

    async def execute(self, action: TriggerAction, ticket: Ticket) -> bool:
        handler = self._handlers.get(action.type)
        if handler is None:
            raise ActionExecutionFailure(action.type, "unknown action type", ticket.id)

        try:
            return await handler(action, ticket)
        except (ResourceNotFoundException, ValidationException) as e:
            raise ActionExecutionFailure(action.type, e.message, ticket.id) from e

    @staticmethod
    def _missing(action: TriggerAction, ticket: Ticket, what: str) -> bool:
        logger.warning(
            f"Action {action.type} skipped: missing {what}",
            extra={"ticket_id": ticket.id, "action_type": action.type}
        )
        return False

    async def _add_comment(self, action: TriggerAction, ticket: Ticket) -> bool:
        content = _param(action, "content", "comment")
        if not content:
            return self._missing(action, ticket, "content")
        internal = bool(_param(action, "is_internal", "isInternal", default=False))
        await self._gateway.append_annotation(
            ticket.id, content, internal=internal, event_kind=AnnotationKind.AUTOMATION
        )
        return True

    async def _change_priority(self, action: TriggerAction, ticket: Ticket) -> bool:
        priority = _param(action, "priority")
        if not priority:
            return self._missing(action, ticket, "priority")
        if priority not in VALID_PRIORITIES:
            raise ActionExecutionFailure(action.type, f"unknown priority '{priority}'", ticket.id)
        await self._gateway.update_ticket_fields(ticket.id, {"priority": priority})
        ticket.priority = priority
        return True

    async def _change_status(self, action: TriggerAction, ticket: Ticket) -> bool:
        status = _param(action, "status")
        if not status:
            return self._missing(action, ticket, "status")
        await self._gateway.update_ticket_fields(ticket.id, {"status": status})
        ticket.status = status
        return True

    async def _assign_to(self, action: TriggerAction, ticket: Ticket) -> bool:
        user_id = _param(action, "user_id", "userId")
        if user_id is None:
            return self._missing(action, ticket, "user id")
        await self._gateway.assign_ticket(ticket.id, user_id)
        ticket.assignee_id = user_id
        return True

    async def _add_tag(self, action: TriggerAction, ticket: Ticket) -> bool:
        tag = _param(action, "tag")
        if not tag:
            return self._missing(action, ticket, "tag")
        await self._gateway.add_tag(ticket.id, tag)
        if tag not in ticket.tags:
            ticket.tags = tuple(ticket.tags) + (tag,)
        return True

    async def _remove_tag(self, action: TriggerAction, ticket: Ticket) -> bool:
        tag = _param(action, "tag")
        if not tag:
            return self._missing(action, ticket, "tag")
        await self._gateway.remove_tag(ticket.id, tag)
        ticket.tags = tuple(t for t in ticket.tags if t != tag)
        return True

    async def _set_category(self, action: TriggerAction, ticket: Ticket) -> bool:
        category = _param(action, "category")
        if not category:
            return self._missing(action, ticket, "category")
        await self._gateway.update_ticket_fields(ticket.id, {"category": category})
        ticket.category = category
        return True

    async def _send_email(self, action: TriggerAction, ticket: Ticket) -> bool:
        to = _param(action, "to")
        subject = _param(action, "subject")
        body = _param(action, "body")
        if not (to and subject and body):
            return self._missing(action, ticket, "to/subject/body")

        if self._email_sender is None:
            logger.info(
                "Email deferred: no email sender configured",
                extra={"ticket_id": ticket.id, "to": to, "subject": subject}
            )
            return True

        await self._email_sender.send(to, subject, body)
        return True


# ========== Trigger evaluation ==========

class AutomationTriggerEvaluator:
    """
    Evaluates active triggers of an event type against a ticket.

    Every matching trigger runs its action list in order. A failing
    action is logged and never stops sibling actions or other triggers.
    """

    def __init__(
        self,
        trigger_repository: ITriggerRepository,
        action_executor: ActionExecutor,
        condition_evaluator: Optional[ConditionEvaluator] = None
    ):
        self._trigger_repo = trigger_repository
        self._executor = action_executor
        self._conditions = condition_evaluator or ConditionEvaluator()

    @property
    def conditions(self) -> ConditionEvaluator:
        return self._conditions

    async def evaluate(
        self,
        trigger_type: str,
        ticket: Ticket,
        change: Optional[ChangeContext] = None
    ) -> int:
        """
        Evaluate triggers of one type.

        Returns:
            Number of triggers whose conditions matched
        """
        triggers = await self._trigger_repo.list_active(trigger_type)
        fields = ticket.as_fields()
        fired = 0

        for trigger in triggers:
            if not trigger.is_active:
                continue
            if not self._conditions.matches(trigger.conditions, fields, change):
                continue

            logger.info(
                f"Trigger '{trigger.name}' matched",
                extra={"trigger_id": trigger.id, "ticket_id": ticket.id, "trigger_type": trigger_type}
            )
            await self.execute_actions(trigger, ticket)
            fired += 1

        return fired

    async def execute_actions(self, trigger: AutomationTrigger, ticket: Ticket) -> ActionReport:
        """Run a trigger's actions in order, isolating failures per action."""
        report = ActionReport(trigger_id=trigger.id, ticket_id=ticket.id)

        for action in trigger.actions:
            try:
                if await self._executor.execute(action, ticket):
                    report.executed += 1
                else:
                    report.skipped += 1
            except ActionExecutionFailure as e:
                report.failed += 1
                logger.warning(
                    e.message,
                    extra={"trigger_id": trigger.id, "ticket_id": ticket.id, "action_type": action.type}
                )
            except ApplicationException as e:
                report.failed += 1
                logger.error(
                    f"Action {action.type} failed: {e.message}",
                    extra={"trigger_id": trigger.id, "ticket_id": ticket.id, "action_type": action.type}
                )
            except Exception:
                report.failed += 1
                logger.exception(
                    f"Action {action.type} raised unexpectedly",
                    extra={"trigger_id": trigger.id, "ticket_id": ticket.id, "action_type": action.type}
                )

        return report


@dataclass
class TimeBasedScanSummary:
    """Counters of one time-based automation scan."""
    run_id: Optional[str] = None
    triggers: int = 0
    tickets: int = 0
    executions: int = 0
    failed_actions: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class TimeBasedAutomationService:
    """
    Periodic scan for time_based triggers.

    For every non-terminal ticket and every active time-based trigger,
    compares the minutes elapsed since the trigger's reference field with
    its threshold; on a match (and if the trigger's other conditions pass)
    the trigger's actions run directly.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        trigger_repository: ITriggerRepository,
        trigger_evaluator: AutomationTriggerEvaluator
    ):
        self._gateway = gateway
        self._trigger_repo = trigger_repository
        self._evaluator = trigger_evaluator

    async def scan_once(
        self,
        now: Optional[datetime] = None,
        run_id: Optional[str] = None
    ) -> TimeBasedScanSummary:
        started = time_module.perf_counter()
        now = now or datetime.now(timezone.utc)
        summary = TimeBasedScanSummary(run_id=run_id)

        triggers = [
            t for t in await self._trigger_repo.list_active(TriggerType.TIME_BASED)
            if t.is_active
        ]
        runnable = []
        for trigger in triggers:
            if trigger.time_condition is None:
                logger.warning(
                    f"Time-based trigger '{trigger.name}' has no time condition, skipping",
                    extra={"trigger_id": trigger.id}
                )
                continue
            runnable.append(trigger)

        summary.triggers = len(runnable)
        if not runnable:
            logger.info("No active time-based triggers", extra={"run_id": run_id})
            return summary

        tickets = await self._gateway.list_all_non_terminal_tickets()
        summary.tickets = len(tickets)

        for ticket in tickets:
            fields = ticket.as_fields()
            for trigger in runnable:
                if not time_condition_matches(trigger.time_condition, fields, now):
                    continue
                if not self._evaluator.conditions.matches(trigger.conditions, fields):
                    continue

                report = await self._evaluator.execute_actions(trigger, ticket)
                summary.executions += 1
                summary.failed_actions += report.failed

        summary.duration_seconds = round(time_module.perf_counter() - started, 3)
        logger.info("Time-based automation scan finished", extra=summary.to_dict())
        return summary


# ========== Event fan-out ==========

class TicketEventFanOut:
    """
    Translates ticket lifecycle events into trigger evaluations.

    on_ticket_updated fires status_changed, priority_changed and assigned
    for the fields that changed, then always ticket_updated.
    """

    def __init__(
        self,
        gateway: ITicketGateway,
        trigger_evaluator: AutomationTriggerEvaluator
    ):
        self._gateway = gateway
        self._evaluator = trigger_evaluator

    async def on_ticket_created(self, ticket_id: Any) -> int:
        ticket = await self._gateway.get_ticket(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return await self._evaluator.evaluate(TriggerType.TICKET_CREATED, ticket)

    async def on_ticket_updated(
        self,
        ticket: Ticket,
        previous: Ticket,
        user_id: Any = None
    ) -> int:
        change = ChangeContext(
            before=previous.as_fields(),
            after=ticket.as_fields(),
            user_id=user_id,
        )
        fired = 0

        if ticket.status != previous.status:
            fired += await self._evaluator.evaluate(TriggerType.STATUS_CHANGED, ticket, change)
        if ticket.priority != previous.priority:
            fired += await self._evaluator.evaluate(TriggerType.PRIORITY_CHANGED, ticket, change)
        if ticket.assignee_id is not None and ticket.assignee_id != previous.assignee_id:
            fired += await self._evaluator.evaluate(TriggerType.ASSIGNED, ticket, change)

        fired += await self._evaluator.evaluate(TriggerType.TICKET_UPDATED, ticket, change)
        return fired

    async def on_comment_added(self, ticket: Ticket, user_id: Any = None) -> int:
        change = ChangeContext(user_id=user_id)
        return await self._evaluator.evaluate(TriggerType.COMMENT_ADDED, ticket, change)
