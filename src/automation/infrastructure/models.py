"""
Automation Infrastructure Models
=================================

SQLAlchemy ORM model for automation triggers. Triggers are administered
elsewhere; the engine only reads them.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database import Base


class AutomationTriggerModel(Base):
    """
    Maps to the 'automation_triggers' table.

    conditions holds either a flat {field: value} map or
    {"_advanced": true, "conditions": [...]}, optionally with a
    "timeCondition" entry for time-based triggers.
    actions holds [{"type": ..., <parameters>}, ...].
    """
    __tablename__ = "automation_triggers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    conditions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    actions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
