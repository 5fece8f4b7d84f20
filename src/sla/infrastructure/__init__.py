"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA monitoring:
- Models: SQLAlchemy ORM models
- Repositories: Ticket gateway and config providers
- External: Config watcher, Slack alerts, periodic jobs
"""

from sla.infrastructure.models import (
    CalendarModel,
    ContractModel,
    SLARuleModel,
    TicketStatusModel,
    UserModel,
    TagModel,
    TicketModel,
    TicketAnnotationModel,
)
from sla.infrastructure.repositories import (
    SQLAlchemyTicketGateway,
    YAMLConfigProvider,
    StaticConfigProvider,
)
from sla.infrastructure.external import (
    SLAConfigManager,
    CircuitBreaker,
    SlackClient,
    PeriodicJob,
)

__all__ = [
    "CalendarModel",
    "ContractModel",
    "SLARuleModel",
    "TicketStatusModel",
    "UserModel",
    "TagModel",
    "TicketModel",
    "TicketAnnotationModel",
    "SQLAlchemyTicketGateway",
    "YAMLConfigProvider",
    "StaticConfigProvider",
    "SLAConfigManager",
    "CircuitBreaker",
    "SlackClient",
    "PeriodicJob",
]
