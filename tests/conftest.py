from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from core import PersistenceFailure, ResourceNotFoundException
from sla.application import ITicketGateway, SLAStats
from sla.domain import (
    ContractSLAProfile,
    SLAAnnotation,
    SLAEngineConfig,
    SlaPolicy,
    StatusPolicy,
    Ticket,
    WorkCalendar,
)
from sla.infrastructure import StaticConfigProvider
from automation.application import ITriggerRepository

# 2024-01-15 is a Monday
MONDAY = datetime(2024, 1, 15, tzinfo=timezone.utc)

BUSINESS_HOURS = {
    day: {"start": "09:00", "end": "18:00"}
    for day in ("monday", "tuesday", "wednesday", "thursday", "friday")
}


def at(day_offset: int, hour: int, minute: int = 0) -> datetime:
    """UTC instant relative to MONDAY 00:00."""
    return MONDAY + timedelta(days=day_offset, hours=hour, minutes=minute)


def business_calendar(timezone_name: str = "UTC", holidays=None) -> WorkCalendar:
    return WorkCalendar.from_mapping(BUSINESS_HOURS, holidays or [], timezone=timezone_name)


def make_profile(contract_id: Any = 1, calendar: Optional[WorkCalendar] = None, **minutes) -> ContractSLAProfile:
    """minutes: priority=(response, solution)."""
    policies = tuple(
        SlaPolicy(contract_id, priority, response, solution)
        for priority, (response, solution) in minutes.items()
    )
    return ContractSLAProfile(contract_id=contract_id, calendar=calendar, policies=policies)


class InMemoryTicketGateway(ITicketGateway):
    """Ticket store held in dicts; records every write."""

    def __init__(self):
        self.tickets: Dict[Any, Ticket] = {}
        self.annotations: List[SLAAnnotation] = []
        self.profiles: Dict[Any, ContractSLAProfile] = {}
        self.status_policies: Dict[str, StatusPolicy] = {}
        self.users = {7: "agent", 8: "lead"}
        self.terminal_statuses = {"closed"}
        self.updates: List[tuple] = []
        self.failing_tickets = set()

    def add(self, ticket: Ticket) -> Ticket:
        self.tickets[ticket.id] = ticket
        return ticket

    def annotations_for(self, ticket_id: Any, event_kind: Optional[str] = None) -> List[SLAAnnotation]:
        return [
            a for a in self.annotations
            if a.ticket_id == ticket_id and (event_kind is None or a.event_kind == event_kind)
        ]

    def _require(self, ticket_id: Any) -> Ticket:
        if ticket_id not in self.tickets:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return self.tickets[ticket_id]

    async def get_ticket(self, ticket_id):
        ticket = self.tickets.get(ticket_id)
        return replace(ticket) if ticket else None

    async def update_ticket_fields(self, ticket_id, fields):
        ticket = self._require(ticket_id)
        self.updates.append((ticket_id, dict(fields)))
        for name, value in fields.items():
            setattr(ticket, name, value)

    async def append_annotation(self, ticket_id, content, internal=True, event_kind=None,
                                due_type=None, created_at=None):
        if ticket_id in self.failing_tickets:
            raise PersistenceFailure("append_annotation", "connection reset")
        self._require(ticket_id)
        self.annotations.append(SLAAnnotation(
            ticket_id=ticket_id,
            content=content,
            is_internal=internal,
            event_kind=event_kind,
            due_type=due_type,
            created_at=created_at or datetime.now(timezone.utc),
        ))

    async def has_recent_annotation(self, ticket_id, event_kind, since):
        return any(a.created_at >= since for a in self.annotations_for(ticket_id, event_kind))

    async def list_non_terminal_tickets_with_solution_deadline_before(self, instant):
        return [
            replace(t) for t in self.tickets.values()
            if t.solution_due_at is not None
            and t.solution_due_at <= instant
            and t.status not in self.terminal_statuses
        ]

    async def list_all_non_terminal_tickets(self):
        return [replace(t) for t in self.tickets.values() if t.status not in self.terminal_statuses]

    async def get_sla_stats(self, now, warning_until):
        due = [t.solution_due_at for t in self.tickets.values()
               if t.solution_due_at is not None and t.status not in self.terminal_statuses]
        return SLAStats(
            total=len(self.tickets),
            with_sla=sum(1 for t in self.tickets.values() if t.solution_due_at is not None),
            at_risk=sum(1 for d in due if d <= warning_until),
            breached=sum(1 for d in due if d <= now),
        )

    async def get_contract_calendar_and_policies(self, contract_id):
        return self.profiles.get(contract_id)

    async def get_status_policy(self, status_id):
        return self.status_policies.get(status_id)

    async def add_tag(self, ticket_id, tag):
        ticket = self._require(ticket_id)
        if tag not in ticket.tags:
            ticket.tags = ticket.tags + (tag,)

    async def remove_tag(self, ticket_id, tag):
        ticket = self._require(ticket_id)
        ticket.tags = tuple(t for t in ticket.tags if t != tag)

    async def assign_ticket(self, ticket_id, user_id):
        if user_id not in self.users:
            raise ResourceNotFoundException("User", user_id)
        self._require(ticket_id).assignee_id = user_id


class InMemoryTriggerRepository(ITriggerRepository):

    def __init__(self, triggers=None):
        self.triggers = list(triggers or [])

    async def list_active(self, trigger_type):
        return [t for t in self.triggers if t.trigger_type == trigger_type and t.is_active]


@pytest.fixture
def gateway():
    return InMemoryTicketGateway()


@pytest.fixture
def engine_config():
    return SLAEngineConfig(warning_window_minutes=120, dedup_window_minutes=30)


@pytest.fixture
def config_provider(engine_config):
    return StaticConfigProvider(engine_config)


@pytest.fixture
def trigger_repo():
    return InMemoryTriggerRepository()
