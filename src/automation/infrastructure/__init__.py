"""
Automation Infrastructure Layer
================================
"""

from automation.infrastructure.models import AutomationTriggerModel
from automation.infrastructure.repositories import SQLAlchemyTriggerRepository

__all__ = [
    "AutomationTriggerModel",
    "SQLAlchemyTriggerRepository",
]
