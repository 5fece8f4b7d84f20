from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from core import ComputationOverflow, ValidationException
from sla.domain import SLACalculator, SlaPolicy, WorkCalendar, WorkingWindow

from conftest import at, business_calendar


def test_deadline_within_same_day():
    calendar = business_calendar()

    assert SLACalculator.calculate_deadline(at(0, 8), 60, calendar) == at(0, 10)
    assert SLACalculator.calculate_deadline(at(0, 8), 480, calendar) == at(0, 17)


def test_deadline_starting_inside_window():
    calendar = business_calendar()

    assert SLACalculator.calculate_deadline(at(0, 9, 30), 30, calendar) == at(0, 10)


def test_deadline_skips_weekend():
    calendar = business_calendar()
    friday_1759 = at(4, 17, 59)

    # one minute on Friday, the second one is Monday 09:00-09:01
    assert SLACalculator.calculate_deadline(friday_1759, 2, calendar) == at(7, 9, 1)


def test_deadline_carries_over_to_next_day():
    calendar = business_calendar()

    # 9 working hours per day: 540 minutes from Monday 09:00 ends Monday 18:00,
    # one more lands on Tuesday
    assert SLACalculator.calculate_deadline(at(0, 9), 540, calendar) == at(0, 18)
    assert SLACalculator.calculate_deadline(at(0, 9), 541, calendar) == at(1, 9, 1)


def test_deadline_skips_holiday():
    calendar = business_calendar(holidays=["2024-01-19"])
    thursday_1730 = at(3, 17, 30)

    # 30 minutes on Thursday, Friday is a holiday, the remaining 30 on Monday
    assert SLACalculator.calculate_deadline(thursday_1730, 60, calendar) == at(7, 9, 30)


def test_zero_minutes_returns_start():
    start = at(5, 3)

    assert SLACalculator.calculate_deadline(start, 0, business_calendar()) == start


def test_negative_minutes_rejected():
    with pytest.raises(ValidationException):
        SLACalculator.calculate_deadline(at(0, 9), -1, business_calendar())


def test_calendar_without_working_days_overflows():
    empty = WorkCalendar()

    with pytest.raises(ComputationOverflow) as exc_info:
        SLACalculator.calculate_deadline(at(0, 9), 5, empty, iteration_factor=10)

    assert exc_info.value.details["minutes_required"] == 5


def test_deadline_is_deterministic():
    calendar = business_calendar(holidays=["2024-01-17"])

    first = SLACalculator.calculate_deadline(at(0, 16), 1000, calendar)
    second = SLACalculator.calculate_deadline(at(0, 16), 1000, calendar)

    assert first == second


def test_deadline_lands_inside_a_working_window():
    calendar = business_calendar(holidays=["2024-01-17"])

    for minutes in (1, 59, 60, 61, 539, 540, 541, 1234, 2700):
        due = SLACalculator.calculate_deadline(at(0, 7, 13), minutes, calendar)
        window = calendar.window_for(due.date())

        assert window is not None
        assert window.start < due.time() <= window.end


def test_deadline_walks_in_calendar_timezone():
    # Sao Paulo is UTC-3 all year
    calendar = business_calendar("America/Sao_Paulo")
    start = at(0, 11)  # 08:00 local

    due = SLACalculator.calculate_deadline(start, 60, calendar)

    assert due == at(0, 13)
    assert due.tzinfo == timezone.utc
    assert due.astimezone(ZoneInfo("America/Sao_Paulo")).hour == 10


def test_naive_start_is_read_as_utc():
    naive = datetime(2024, 1, 15, 8, 0)

    assert SLACalculator.calculate_deadline(naive, 60, business_calendar()) == at(0, 10)


def test_calculate_deadlines_uses_same_start_for_both():
    policy = SlaPolicy(contract_id=1, priority="high", response_time_minutes=60, solution_time_minutes=480)

    result = SLACalculator.calculate_deadlines(at(0, 8), policy, business_calendar())

    assert result.response_due_at == at(0, 10)
    assert result.solution_due_at == at(0, 17)
    assert result.response_due_at <= result.solution_due_at


def test_dst_shift_inside_window_counts_real_minutes():
    berlin = ZoneInfo("Europe/Berlin")
    sundays = WorkCalendar(windows={6: WorkingWindow(start=time(0), end=time(6))}, timezone="Europe/Berlin")

    # clocks jump 02:00 -> 03:00: the window holds five real hours
    spring = datetime(2024, 3, 31, 0, 0, tzinfo=berlin)
    assert SLACalculator.calculate_deadline(spring, 300, sundays) == datetime(2024, 3, 31, 4, 0, tzinfo=timezone.utc)
    assert SLACalculator.calculate_deadline(spring, 301, sundays) == datetime(2024, 4, 6, 22, 1, tzinfo=timezone.utc)

    # clocks fall back 03:00 -> 02:00: the window holds seven real hours
    autumn = datetime(2024, 10, 27, 0, 0, tzinfo=berlin)
    assert SLACalculator.calculate_deadline(autumn, 420, sundays) == datetime(2024, 10, 27, 5, 0, tzinfo=timezone.utc)


def test_calendar_from_mapping_handles_stored_shapes():
    calendar = WorkCalendar.from_mapping(
        {
            "Monday": {"start": "08:00", "end": "12:00"},
            "tuesday": {"start": "08:00", "end": "12:00", "isWorking": False},
            "wednesday": None,
        },
        holidays=["2024-12-25", {"date": "2025-01-01", "name": "New Year"}],
    )

    assert calendar.windows == {0: WorkingWindow(start=time(8), end=time(12))}
    assert calendar.is_holiday(date(2025, 1, 1))
    assert calendar.window_for(date(2024, 12, 25)) is None
    assert calendar.timezone == "UTC"


def test_calendar_rejects_bad_windows():
    with pytest.raises(ValidationException):
        WorkCalendar.from_mapping({"monday": {"start": "18:00", "end": "09:00"}})
    with pytest.raises(ValidationException):
        WorkCalendar.from_mapping({"funday": {"start": "09:00", "end": "18:00"}})
    with pytest.raises(ValidationException):
        WorkCalendar.from_mapping({"monday": {"start": "9am", "end": "18:00"}})


def test_policy_requires_solution_not_before_response():
    with pytest.raises(ValidationException):
        SlaPolicy(contract_id=1, priority="low", response_time_minutes=120, solution_time_minutes=60)
    with pytest.raises(ValidationException):
        SlaPolicy(contract_id=1, priority="low", response_time_minutes=0, solution_time_minutes=60)


def test_deadline_spanning_a_working_week():
    due = SLACalculator.calculate_deadline(at(0, 9), 5 * 540, business_calendar())

    assert due == at(4, 18)
    assert due - at(0, 9) == timedelta(days=4, hours=9)
