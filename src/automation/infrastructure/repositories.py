"""
Automation Infrastructure Repositories
=======================================

Read-only trigger repository on async SQLAlchemy.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from automation.application import ITriggerRepository
from automation.domain import AutomationTrigger
from automation.infrastructure.models import AutomationTriggerModel
from core import PersistenceFailure, ValidationException

logger = logging.getLogger(__name__)


class SQLAlchemyTriggerRepository(ITriggerRepository):
    """
    Loads active triggers and parses their stored JSON into domain objects.

    A trigger whose stored conditions or actions cannot be parsed is
    logged and left out; it never blocks the other triggers.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_active(self, trigger_type: str) -> List[AutomationTrigger]:
        stmt = (
            select(AutomationTriggerModel)
            .where(
                AutomationTriggerModel.trigger_type == trigger_type,
                AutomationTriggerModel.is_active.is_(True),
            )
            .order_by(AutomationTriggerModel.id.asc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceFailure("list_active_triggers", str(e)) from e

        triggers = []
        for model in models:
            try:
                triggers.append(AutomationTrigger.from_raw(
                    id=model.id,
                    name=model.name,
                    trigger_type=model.trigger_type,
                    conditions=model.conditions,
                    actions=model.actions,
                    is_active=model.is_active,
                ))
            except ValidationException as e:
                logger.error(
                    f"Skipping malformed trigger '{model.name}': {e.message}",
                    extra={"trigger_id": model.id}
                )
        return triggers
