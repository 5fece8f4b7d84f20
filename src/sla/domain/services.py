"""
SLA Domain Services
====================

Stateless business logic for SLA deadlines and classification.

Both classes are pure: no I/O, no shared mutable state, safe to call
from any number of concurrent scans.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from config import DueType, ClassificationKind
from core import ComputationOverflow, ValidationException
from sla.domain.entities import Ticket, ensure_aware
from sla.domain.value_objects import (
    Classification,
    DeadlineResult,
    SlaPolicy,
    StatusPolicy,
    WorkCalendar,
)

ONE_MINUTE = timedelta(minutes=1)


class SLACalculator:
    """
    Business-time deadline arithmetic.

    Walks forward minute by minute from the start instant, counting only
    minutes inside a working window on a non-holiday day. The cursor
    advances in UTC; calendar-local time is used only to pick the day and
    its window, so a DST shift inside a window never adds or drops minutes.
    The due instant is the end of the last business minute consumed.
    """

    @staticmethod
    def _start_of_next_day(day: date, tz: ZoneInfo) -> datetime:
        return datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)

    @staticmethod
    def calculate_deadline(
        start_instant: datetime,
        minutes_required: int,
        calendar: WorkCalendar,
        iteration_factor: int = 10
    ) -> datetime:
        """
        Calculate the instant at which minutes_required business minutes have elapsed.

        Args:
            start_instant: When the clock starts (naive values are read as UTC)
            minutes_required: Business minutes to count, >= 0
            calendar: Working windows, holidays and timezone to walk in
            iteration_factor: Abort after factor x minutes_required loop iterations

        Returns:
            The due instant, in the timezone of start_instant

        Raises:
            ComputationOverflow: if the walk exceeds its iteration bound
        """
        if minutes_required < 0:
            raise ValidationException("minutes_required must be >= 0")
        if minutes_required == 0:
            return start_instant

        start = ensure_aware(start_instant)
        tz = ZoneInfo(calendar.timezone)
        cursor = start.astimezone(timezone.utc)
        remaining = minutes_required
        max_iterations = iteration_factor * minutes_required
        iterations = 0

        while True:
            iterations += 1
            if iterations > max_iterations:
                raise ComputationOverflow(minutes_required, max_iterations)

            day = cursor.astimezone(tz).date()
            window = calendar.window_for(day)
            if window is None:
                cursor = SLACalculator._start_of_next_day(day, tz)
                continue

            window_start, window_end = (
                bound.astimezone(timezone.utc) for bound in window.bounds_on(day, tz)
            )
            if cursor < window_start:
                cursor = window_start
                continue
            if cursor >= window_end:
                cursor = SLACalculator._start_of_next_day(day, tz)
                continue

            remaining -= 1
            if remaining == 0:
                return (cursor + ONE_MINUTE).astimezone(start.tzinfo)
            cursor += ONE_MINUTE

    @staticmethod
    def calculate_deadlines(
        start_instant: datetime,
        policy: SlaPolicy,
        calendar: WorkCalendar,
        iteration_factor: int = 10
    ) -> DeadlineResult:
        """Compute response and solution deadlines independently from the same start."""
        return DeadlineResult(
            response_due_at=SLACalculator.calculate_deadline(
                start_instant, policy.response_time_minutes, calendar, iteration_factor
            ),
            solution_due_at=SLACalculator.calculate_deadline(
                start_instant, policy.solution_time_minutes, calendar, iteration_factor
            ),
        )


class SLAClassifier:
    """
    Classifies a ticket against "now".

    Classification is recomputed on every scan; nothing is persisted
    between scans.
    """

    @staticmethod
    def classify(
        ticket: Ticket,
        now: datetime,
        warning_window: timedelta,
        status_policy: Optional[StatusPolicy] = None
    ) -> Classification:
        """
        Classify a ticket.

        Order of precedence: excluded, solution breach, response breach,
        solution warning, response warning, on track. A response deadline
        already met by a first response is ignored.
        """
        if status_policy is not None and status_policy.excludes_from_monitoring:
            return Classification(kind=ClassificationKind.EXCLUDED)

        now = ensure_aware(now) if now else datetime.now(timezone.utc)
        solution_due = ticket.solution_due_at
        response_due = None if ticket.response_met else ticket.response_due_at

        if solution_due is not None and now >= solution_due:
            return Classification(ClassificationKind.BREACH, DueType.SOLUTION, solution_due)
        if response_due is not None and now >= response_due:
            return Classification(ClassificationKind.BREACH, DueType.RESPONSE, response_due)
        if solution_due is not None and now >= solution_due - warning_window:
            return Classification(ClassificationKind.WARNING, DueType.SOLUTION, solution_due)
        if response_due is not None and now >= response_due - warning_window:
            return Classification(ClassificationKind.WARNING, DueType.RESPONSE, response_due)

        return Classification(kind=ClassificationKind.ON_TRACK)
