"""
SLA Infrastructure Repositories
=================================

Concrete implementations of the collaborator interfaces using SQLAlchemy.

This layer contains the data access logic - how tickets, contracts and
annotations are read from and written to the database.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional

from sqlalchemy import and_, case, func, select, true, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sla.application import ISLAConfigProvider, ITicketGateway, SLAStats
from sla.domain import (
    ContractSLAProfile,
    SLAEngineConfig,
    SlaPolicy,
    StatusPolicy,
    Ticket,
    WorkCalendar,
    ensure_aware,
)
from sla.infrastructure.models import (
    ContractModel,
    TagModel,
    TicketAnnotationModel,
    TicketModel,
    TicketStatusModel,
    UserModel,
)
from core import (
    PersistenceFailure,
    ResourceNotFoundException,
    ValidationException,
)

logger = logging.getLogger(__name__)

UPDATABLE_TICKET_FIELDS = {
    "subject",
    "priority",
    "status",
    "category",
    "contract_id",
    "assignee_id",
    "updated_at",
    "first_response_at",
    "response_due_at",
    "solution_due_at",
}


def _to_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_aware(value).astimezone(timezone.utc)
    return value


class SQLAlchemyTicketGateway(ITicketGateway):
    """
    SQLAlchemy implementation of the ticket-management collaborator.

    Every call opens its own short session, so a failure on one ticket
    never poisons the session used for the rest of a batch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config_provider: Optional[ISLAConfigProvider] = None,
        default_timezone: str = "UTC"
    ):
        self._session_factory = session_factory
        self._config_provider = config_provider
        self._default_timezone = default_timezone

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """Session with commit on success; SQLAlchemy errors become PersistenceFailure."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Ticket store {operation} failed: {e}", extra={"operation": operation})
            raise PersistenceFailure(operation, str(e)) from e

    @staticmethod
    def _to_domain(model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            priority=model.priority,
            status=model.status,
            created_at=ensure_aware(model.created_at),
            updated_at=ensure_aware(model.updated_at),
            contract_id=model.contract_id,
            response_due_at=ensure_aware(model.response_due_at),
            solution_due_at=ensure_aware(model.solution_due_at),
            first_response_at=ensure_aware(model.first_response_at),
            assignee_id=model.assignee_id,
            requester_id=model.requester_id,
            subject=model.subject or "",
            category=model.category,
            tags=tuple(tag.name for tag in model.tags),
        )

    async def _terminal_statuses(self, session: AsyncSession) -> List[str]:
        stmt = select(TicketStatusModel.name).where(TicketStatusModel.is_terminal.is_(True))
        result = await session.execute(stmt)
        terminal = set(result.scalars().all())
        if self._config_provider is not None:
            terminal.update(self._config_provider.get_config().terminal_statuses())
        return sorted(terminal)

    async def get_ticket(self, ticket_id: Any) -> Optional[Ticket]:
        async with self._transaction("get_ticket") as session:
            model = await session.get(TicketModel, ticket_id)
            return self._to_domain(model) if model else None

    async def update_ticket_fields(self, ticket_id: Any, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_TICKET_FIELDS
        if unknown:
            raise ValidationException(f"Fields not updatable: {sorted(unknown)}")
        if not fields:
            return

        values = {name: _to_utc(value) for name, value in fields.items()}
        async with self._transaction("update_ticket_fields") as session:
            result = await session.execute(
                update(TicketModel).where(TicketModel.id == ticket_id).values(**values)
            )
            if result.rowcount == 0:
                raise ResourceNotFoundException("Ticket", ticket_id)

    async def append_annotation(
        self,
        ticket_id: Any,
        content: str,
        internal: bool = True,
        event_kind: Optional[str] = None,
        due_type: Optional[str] = None,
        created_at: Optional[datetime] = None
    ) -> None:
        async with self._transaction("append_annotation") as session:
            session.add(TicketAnnotationModel(
                ticket_id=ticket_id,
                content=content,
                is_internal=internal,
                event_kind=event_kind,
                due_type=due_type,
                created_at=_to_utc(created_at or datetime.now(timezone.utc)),
            ))

    async def has_recent_annotation(
        self,
        ticket_id: Any,
        event_kind: str,
        since: datetime
    ) -> bool:
        async with self._transaction("has_recent_annotation") as session:
            stmt = (
                select(TicketAnnotationModel.id)
                .where(
                    TicketAnnotationModel.ticket_id == ticket_id,
                    TicketAnnotationModel.event_kind == event_kind,
                    TicketAnnotationModel.created_at >= _to_utc(since),
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def list_annotations(self, ticket_id: Any) -> List[TicketAnnotationModel]:
        """All annotations of a ticket, oldest first."""
        async with self._transaction("list_annotations") as session:
            stmt = (
                select(TicketAnnotationModel)
                .where(TicketAnnotationModel.ticket_id == ticket_id)
                .order_by(TicketAnnotationModel.created_at.asc(), TicketAnnotationModel.id.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_non_terminal_tickets_with_solution_deadline_before(
        self,
        instant: datetime
    ) -> List[Ticket]:
        async with self._transaction("list_at_risk_tickets") as session:
            terminal = await self._terminal_statuses(session)
            stmt = select(TicketModel).where(
                TicketModel.solution_due_at.is_not(None),
                TicketModel.solution_due_at <= _to_utc(instant),
            )
            if terminal:
                stmt = stmt.where(TicketModel.status.not_in(terminal))
            stmt = stmt.order_by(TicketModel.solution_due_at.asc())

            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    async def list_all_non_terminal_tickets(self) -> List[Ticket]:
        async with self._transaction("list_non_terminal_tickets") as session:
            terminal = await self._terminal_statuses(session)
            stmt = select(TicketModel)
            if terminal:
                stmt = stmt.where(TicketModel.status.not_in(terminal))
            stmt = stmt.order_by(TicketModel.id.asc())

            result = await session.execute(stmt)
            return [self._to_domain(m) for m in result.scalars().all()]

    async def get_sla_stats(self, now: datetime, warning_until: datetime) -> SLAStats:
        async with self._transaction("get_sla_stats") as session:
            terminal = await self._terminal_statuses(session)
            is_open = TicketModel.status.not_in(terminal) if terminal else true()
            due = TicketModel.solution_due_at

            stmt = select(
                func.count(TicketModel.id),
                func.count(due),
                func.count(case((and_(is_open, due <= _to_utc(warning_until)), TicketModel.id))),
                func.count(case((and_(is_open, due <= _to_utc(now)), TicketModel.id))),
            )
            total, with_sla, at_risk, breached = (await session.execute(stmt)).one()
            return SLAStats(total=total, with_sla=with_sla, at_risk=at_risk, breached=breached)

    async def get_contract_calendar_and_policies(
        self,
        contract_id: Any
    ) -> Optional[ContractSLAProfile]:
        async with self._transaction("get_contract") as session:
            contract = await session.get(ContractModel, contract_id)
            if contract is None:
                return None

            calendar = None
            if contract.calendar is not None:
                try:
                    calendar = WorkCalendar.from_mapping(
                        contract.calendar.working_hours,
                        contract.calendar.holidays,
                        timezone=contract.calendar.timezone,
                        id=contract.calendar.id,
                        name=contract.calendar.name,
                        default_timezone=self._default_timezone,
                    )
                except ValidationException as e:
                    logger.warning(
                        f"Ignoring malformed calendar: {e.message}",
                        extra={"contract_id": contract.id, "calendar_id": contract.calendar.id}
                    )

            policies = []
            for rule in contract.sla_rules:
                try:
                    policies.append(SlaPolicy(
                        contract_id=contract.id,
                        priority=rule.priority,
                        response_time_minutes=rule.response_time_minutes,
                        solution_time_minutes=rule.solution_time_minutes,
                    ))
                except ValidationException as e:
                    logger.warning(
                        f"Ignoring invalid SLA rule: {e.message}",
                        extra={"contract_id": contract.id, "priority": rule.priority}
                    )

            return ContractSLAProfile(
                contract_id=contract.id,
                calendar=calendar,
                policies=tuple(policies),
            )

    async def get_status_policy(self, status_id: str) -> Optional[StatusPolicy]:
        async with self._transaction("get_status_policy") as session:
            model = await session.get(TicketStatusModel, status_id)
            if model is None:
                return None
            return StatusPolicy(
                status_id=model.name,
                pauses_sla=model.pauses_sla,
                is_terminal=model.is_terminal,
            )

    async def add_tag(self, ticket_id: Any, tag: str) -> None:
        async with self._transaction("add_tag") as session:
            ticket = await session.get(TicketModel, ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            if any(t.name == tag for t in ticket.tags):
                return

            result = await session.execute(select(TagModel).where(TagModel.name == tag))
            tag_model = result.scalar_one_or_none()
            if tag_model is None:
                tag_model = TagModel(name=tag)
                session.add(tag_model)
            ticket.tags.append(tag_model)

    async def remove_tag(self, ticket_id: Any, tag: str) -> None:
        async with self._transaction("remove_tag") as session:
            ticket = await session.get(TicketModel, ticket_id)
            if ticket is None:
                raise ResourceNotFoundException("Ticket", ticket_id)
            ticket.tags = [t for t in ticket.tags if t.name != tag]

    async def assign_ticket(self, ticket_id: Any, user_id: Any) -> None:
        async with self._transaction("assign_ticket") as session:
            user = await session.get(UserModel, user_id)
            if user is None or not user.is_active:
                raise ResourceNotFoundException("User", user_id)

            result = await session.execute(
                update(TicketModel).where(TicketModel.id == ticket_id).values(assignee_id=user_id)
            )
            if result.rowcount == 0:
                raise ResourceNotFoundException("Ticket", ticket_id)


class YAMLConfigProvider(ISLAConfigProvider):
    """
    SLA engine configuration provider backed by a YAML file.

    Delegates to an SLAConfigManager, which watches the file and reloads
    automatically; each call returns the latest loaded snapshot.
    """

    def __init__(self, config_manager: Any):
        self._config_manager = config_manager

    def get_config(self) -> SLAEngineConfig:
        """Get current SLA engine configuration."""
        return self._config_manager.config

    def reload(self) -> None:
        """Reload configuration from file."""
        self._config_manager.reload()


class StaticConfigProvider(ISLAConfigProvider):
    """Fixed configuration, for scripts and embedding without a YAML file."""

    def __init__(self, config: Optional[SLAEngineConfig] = None):
        self._config = config or SLAEngineConfig()

    def get_config(self) -> SLAEngineConfig:
        return self._config
