"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety. Engine policy
    (warning window, dedup window, status flags) lives in the SLA YAML
    file instead, so it can be hot-reloaded.
    """

    # ========== Application ==========
    app_name: str = Field(default="sla-engine", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Engine ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA engine policy YAML file"
    )
    default_timezone: str = Field(
        default="UTC",
        description="IANA timezone for calendars that do not declare one"
    )
    deadline_iteration_factor: int = Field(
        default=10,
        description="Deadline walk aborts after factor x minutes iterations",
        ge=1
    )

    # ========== Scheduler ==========
    scheduler_enabled: bool = Field(default=True, description="Start periodic jobs on startup")
    sla_monitor_interval_seconds: int = Field(
        default=300,
        description="Seconds between SLA monitor scans",
        ge=10
    )
    automation_interval_seconds: int = Field(
        default=300,
        description="Seconds between time-based automation scans",
        ge=10
    )
    scheduler_initial_delay_seconds: float = Field(
        default=5.0,
        description="Delay before the first run after startup",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for SLA alerts"
    )
    slack_channel: str = Field(
        default="#sla-alerts",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject unknown IANA zone names at startup."""
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"unknown timezone: {v}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Priority(str):
    """Ticket priority levels, lowest to highest."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"


class TicketStatus(str):
    """Built-in ticket statuses. Deployments may add their own."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class DueType(str):
    """Which SLA clock an event refers to."""
    RESPONSE = "response"
    SOLUTION = "solution"


class ClassificationKind(str):
    """Monitor classification of a single ticket."""
    EXCLUDED = "excluded"
    ON_TRACK = "on_track"
    WARNING = "warning"
    BREACH = "breach"


class AnnotationKind(str):
    """Structured kind stored alongside annotations written by the engine."""
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"
    SLA_ESCALATION = "sla_escalation"
    AUTOMATION = "automation"


class TriggerType(str):
    """Events that can fire automation triggers."""
    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
    STATUS_CHANGED = "status_changed"
    PRIORITY_CHANGED = "priority_changed"
    ASSIGNED = "assigned"
    COMMENT_ADDED = "comment_added"
    TIME_BASED = "time_based"


class ActionType(str):
    """Automation actions understood by the executor."""
    ADD_COMMENT = "add_comment"
    CHANGE_PRIORITY = "change_priority"
    CHANGE_STATUS = "change_status"
    ASSIGN_TO = "assign_to"
    ADD_TAG = "add_tag"
    REMOVE_TAG = "remove_tag"
    SET_CATEGORY = "set_category"
    SEND_EMAIL = "send_email"


class TimeUnit(str):
    """Units for time-based trigger thresholds."""
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


# ========== Lists for validation ==========

VALID_PRIORITIES = [
    Priority.LOW, Priority.MEDIUM, Priority.HIGH,
    Priority.URGENT, Priority.CRITICAL
]
VALID_DUE_TYPES = [DueType.RESPONSE, DueType.SOLUTION]
VALID_TRIGGER_TYPES = [
    TriggerType.TICKET_CREATED, TriggerType.TICKET_UPDATED,
    TriggerType.STATUS_CHANGED, TriggerType.PRIORITY_CHANGED,
    TriggerType.ASSIGNED, TriggerType.COMMENT_ADDED, TriggerType.TIME_BASED
]
VALID_ACTION_TYPES = [
    ActionType.ADD_COMMENT, ActionType.CHANGE_PRIORITY, ActionType.CHANGE_STATUS,
    ActionType.ASSIGN_TO, ActionType.ADD_TAG, ActionType.REMOVE_TAG,
    ActionType.SET_CATEGORY, ActionType.SEND_EMAIL
]
VALID_TIME_UNITS = [TimeUnit.MINUTES, TimeUnit.HOURS, TimeUnit.DAYS]
WEEKDAY_NAMES = [
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday"
]
