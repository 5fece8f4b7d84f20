"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared between concurrent scans.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from config import (
    ClassificationKind, TicketStatus,
    VALID_PRIORITIES, WEEKDAY_NAMES
)
from core import ValidationException


def parse_clock(value: Any) -> time:
    """Parse "HH:MM" (or a time) into a time of day."""
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%H:%M").time()
    except ValueError:
        raise ValidationException(f"Invalid clock time '{value}', expected HH:MM")


def parse_holiday(value: Any) -> date:
    """Accept a date, an ISO string, or a {"date": ..., "name": ...} object."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, Mapping):
        value = value.get("date")
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationException(f"Invalid holiday date '{value}', expected YYYY-MM-DD")


@dataclass(frozen=True)
class WorkingWindow:
    """Working hours for one weekday. start < end, both in calendar-local time."""
    start: time
    end: time

    def __post_init__(self):
        if self.start >= self.end:
            raise ValidationException(
                f"Working window start {self.start:%H:%M} must be before end {self.end:%H:%M}"
            )

    @property
    def minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def bounds_on(self, day: date, tzinfo) -> tuple[datetime, datetime]:
        """Window start and end on a given local date."""
        return (
            datetime.combine(day, self.start, tzinfo=tzinfo),
            datetime.combine(day, self.end, tzinfo=tzinfo),
        )


@dataclass(frozen=True)
class WorkCalendar:
    """
    Weekly business calendar of a contract.

    windows maps weekday (0 = Monday) to its working window; a missing
    weekday is a non-working day. Holidays are local calendar dates.
    """
    windows: Mapping[int, WorkingWindow] = field(default_factory=dict)
    holidays: frozenset = field(default_factory=frozenset)
    timezone: str = "UTC"
    id: Optional[Any] = None
    name: str = ""

    @classmethod
    def from_mapping(
        cls,
        working_hours: Optional[Mapping[str, Any]],
        holidays: Optional[Iterable[Any]] = None,
        timezone: Optional[str] = None,
        id: Optional[Any] = None,
        name: str = "",
        default_timezone: str = "UTC",
    ) -> "WorkCalendar":
        """
        Build a calendar from its stored JSON shape.

        Day entries may be {"start", "end"} or carry an explicit
        "isWorking"/"enabled" flag; a false flag or null entry is a day off.
        """
        windows: Dict[int, WorkingWindow] = {}
        for day_name, entry in (working_hours or {}).items():
            key = str(day_name).lower()
            if key not in WEEKDAY_NAMES:
                raise ValidationException(f"Unknown weekday '{day_name}' in working hours")
            if not entry:
                continue
            if hasattr(entry, "model_dump"):
                entry = entry.model_dump()
            flag = entry.get("isWorking", entry.get("enabled", True))
            if not flag:
                continue
            windows[WEEKDAY_NAMES.index(key)] = WorkingWindow(
                start=parse_clock(entry["start"]),
                end=parse_clock(entry["end"]),
            )

        return cls(
            windows=windows,
            holidays=frozenset(parse_holiday(h) for h in (holidays or [])),
            timezone=timezone or default_timezone,
            id=id,
            name=name,
        )

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays

    def window_for(self, day: date) -> Optional[WorkingWindow]:
        """Working window on a date, or None for holidays and days off."""
        if day in self.holidays:
            return None
        return self.windows.get(day.weekday())

    @property
    def has_working_day(self) -> bool:
        return bool(self.windows)


@dataclass(frozen=True)
class SlaPolicy:
    """Response and solution targets, in business minutes, for one contract priority."""
    contract_id: Any
    priority: str
    response_time_minutes: int
    solution_time_minutes: int

    def __post_init__(self):
        if self.response_time_minutes <= 0 or self.solution_time_minutes <= 0:
            raise ValidationException("SLA times must be positive minutes")
        if self.solution_time_minutes < self.response_time_minutes:
            raise ValidationException(
                "solution_time_minutes must be greater than or equal to response_time_minutes"
            )


@dataclass(frozen=True)
class ContractSLAProfile:
    """Everything the engine needs from a contract: its calendar and its policies."""
    contract_id: Any
    calendar: Optional[WorkCalendar]
    policies: tuple = ()

    def policy_for(self, priority: str) -> Optional[SlaPolicy]:
        for policy in self.policies:
            if policy.priority == priority:
                return policy
        return None


@dataclass(frozen=True)
class StatusPolicy:
    """Per-status SLA flags owned by the ticket-management collaborator."""
    status_id: str
    pauses_sla: bool = False
    is_terminal: bool = False

    @property
    def excludes_from_monitoring(self) -> bool:
        return self.is_terminal or self.pauses_sla


@dataclass(frozen=True)
class DeadlineResult:
    """Computed deadlines for one ticket. A pure function of its inputs."""
    response_due_at: datetime
    solution_due_at: datetime

    def to_fields(self) -> dict:
        return {
            "response_due_at": self.response_due_at,
            "solution_due_at": self.solution_due_at,
        }


@dataclass(frozen=True)
class ClassificationEvent:
    """A warning or breach detected by the monitor, forwarded to the dispatcher."""
    ticket_id: Any
    kind: str
    due_type: str
    detected_at: datetime
    due_at: datetime

    @property
    def is_breach(self) -> bool:
        return self.kind == ClassificationKind.BREACH

    @property
    def overdue(self) -> timedelta:
        return max(timedelta(0), self.detected_at - self.due_at)

    @property
    def time_left(self) -> timedelta:
        return max(timedelta(0), self.due_at - self.detected_at)


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one ticket against "now"."""
    kind: str
    due_type: Optional[str] = None
    due_at: Optional[datetime] = None

    @property
    def is_actionable(self) -> bool:
        return self.kind in (ClassificationKind.WARNING, ClassificationKind.BREACH)

    def to_event(self, ticket_id: Any, detected_at: datetime) -> Optional[ClassificationEvent]:
        if not self.is_actionable:
            return None
        return ClassificationEvent(
            ticket_id=ticket_id,
            kind=self.kind,
            due_type=self.due_type,
            detected_at=detected_at,
            due_at=self.due_at,
        )


# ========== Engine policy (loaded from YAML) ==========

CLOCK_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class WorkingWindowConfig(BaseModel):
    """Working window for one weekday in the YAML file."""
    start: str = Field(pattern=CLOCK_PATTERN)
    end: str = Field(pattern=CLOCK_PATTERN)


class CalendarConfig(BaseModel):
    """Fallback calendar for contracts without their own."""
    name: str = "fallback"
    timezone: Optional[str] = None
    working_hours: Dict[str, Optional[WorkingWindowConfig]] = Field(default_factory=dict)
    holidays: List[date] = Field(default_factory=list)

    def to_calendar(self, default_timezone: str = "UTC") -> WorkCalendar:
        return WorkCalendar.from_mapping(
            {day: (w.model_dump() if w else None) for day, w in self.working_hours.items()},
            self.holidays,
            timezone=self.timezone,
            name=self.name,
            default_timezone=default_timezone,
        )


class StatusPolicyConfig(BaseModel):
    """SLA flags for one ticket status."""
    pauses_sla: bool = False
    is_terminal: bool = False


class EscalationConfig(BaseModel):
    """Breach escalation behaviour."""
    enabled: bool = True
    notify_channels: List[str] = Field(default_factory=lambda: ["#sla-alerts"])


def _default_status_policies() -> Dict[str, StatusPolicyConfig]:
    return {
        TicketStatus.OPEN: StatusPolicyConfig(),
        TicketStatus.IN_PROGRESS: StatusPolicyConfig(),
        TicketStatus.PENDING: StatusPolicyConfig(pauses_sla=True),
        TicketStatus.RESOLVED: StatusPolicyConfig(pauses_sla=True),
        TicketStatus.CLOSED: StatusPolicyConfig(pauses_sla=True, is_terminal=True),
    }


class SLAEngineConfig(BaseModel):
    """
    SLA engine policy loaded from YAML.

    This is a value object - replaced wholesale on hot reload,
    never mutated in place.
    """
    warning_window_minutes: int = Field(
        default=120, ge=0,
        description="Lead time before a deadline that counts as warning"
    )
    dedup_window_minutes: int = Field(
        default=30, ge=0,
        description="Trailing window in which an equivalent annotation suppresses a new one"
    )
    pause_mode: Literal["exclude"] = Field(
        default="exclude",
        description="Paused statuses are skipped by the monitor; due dates are not shifted"
    )
    priority_order: List[str] = Field(
        default_factory=lambda: list(VALID_PRIORITIES),
        description="Priorities from lowest to highest severity"
    )
    escalation: EscalationConfig = Field(default_factory=EscalationConfig)
    fallback_calendar: Optional[CalendarConfig] = None
    status_policies: Dict[str, StatusPolicyConfig] = Field(
        default_factory=_default_status_policies
    )

    @field_validator("priority_order")
    @classmethod
    def validate_priority_order(cls, v: List[str]) -> List[str]:
        if not v:
            raise ValueError("priority_order must not be empty")
        if len(set(v)) != len(v):
            raise ValueError("priority_order must not contain duplicates")
        return v

    @property
    def warning_window(self) -> timedelta:
        return timedelta(minutes=self.warning_window_minutes)

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(minutes=self.dedup_window_minutes)

    @property
    def max_priority(self) -> str:
        return self.priority_order[-1]

    def priority_rank(self, priority: Optional[str]) -> int:
        """Position in priority_order; unknown priorities rank below everything."""
        try:
            return self.priority_order.index(priority)
        except ValueError:
            return -1

    def status_policy(self, status_id: str) -> Optional[StatusPolicy]:
        config = self.status_policies.get(status_id)
        if config is None:
            return None
        return StatusPolicy(
            status_id=status_id,
            pauses_sla=config.pauses_sla,
            is_terminal=config.is_terminal,
        )

    def terminal_statuses(self) -> List[str]:
        return [s for s, c in self.status_policies.items() if c.is_terminal]
