"""
SLA Domain Layer
================

Domain layer for SLA monitoring module.

Contains:
- Entities: Ticket, SLAAnnotation
- Value Objects: WorkCalendar, SlaPolicy, DeadlineResult, ClassificationEvent, SLAEngineConfig
- Domain Services: SLACalculator (business-time deadlines), SLAClassifier

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from sla.domain.entities import Ticket, SLAAnnotation, ensure_aware
from sla.domain.value_objects import (
    WorkingWindow,
    WorkCalendar,
    SlaPolicy,
    ContractSLAProfile,
    StatusPolicy,
    DeadlineResult,
    Classification,
    ClassificationEvent,
    CalendarConfig,
    EscalationConfig,
    StatusPolicyConfig,
    SLAEngineConfig,
)
from sla.domain.services import SLACalculator, SLAClassifier

__all__ = [
    # Entities
    "Ticket",
    "SLAAnnotation",
    "ensure_aware",
    # Value Objects
    "WorkingWindow",
    "WorkCalendar",
    "SlaPolicy",
    "ContractSLAProfile",
    "StatusPolicy",
    "DeadlineResult",
    "Classification",
    "ClassificationEvent",
    "CalendarConfig",
    "EscalationConfig",
    "StatusPolicyConfig",
    "SLAEngineConfig",
    # Domain Services
    "SLACalculator",
    "SLAClassifier",
]
