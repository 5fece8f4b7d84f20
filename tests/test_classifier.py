from datetime import timedelta

from sla.domain import SLAClassifier, StatusPolicy, Ticket

from conftest import at

NOW = at(2, 12)
WARNING = timedelta(minutes=120)


def _ticket(**overrides) -> Ticket:
    values = dict(id=1, priority="high", status="open", created_at=at(0, 9))
    values.update(overrides)
    return Ticket(**values)


def test_solution_breach():
    ticket = _ticket(solution_due_at=NOW - timedelta(seconds=1))

    result = SLAClassifier.classify(ticket, NOW, WARNING)

    assert result.kind == "breach"
    assert result.due_type == "solution"
    assert result.due_at == NOW - timedelta(seconds=1)


def test_solution_warning_inside_window():
    result = SLAClassifier.classify(_ticket(solution_due_at=NOW + timedelta(minutes=30)), NOW, WARNING)

    assert result.kind == "warning"
    assert result.due_type == "solution"


def test_on_track_outside_window():
    result = SLAClassifier.classify(_ticket(solution_due_at=NOW + timedelta(hours=3)), NOW, WARNING)

    assert result.kind == "on_track"
    assert result.due_type is None
    assert not result.is_actionable


def test_response_breach_when_no_first_response():
    ticket = _ticket(
        response_due_at=NOW - timedelta(minutes=5),
        solution_due_at=NOW + timedelta(hours=6),
    )

    result = SLAClassifier.classify(ticket, NOW, WARNING)

    assert (result.kind, result.due_type) == ("breach", "response")


def test_met_response_deadline_is_ignored():
    ticket = _ticket(
        response_due_at=NOW - timedelta(minutes=5),
        first_response_at=NOW - timedelta(minutes=10),
        solution_due_at=NOW + timedelta(hours=6),
    )

    assert SLAClassifier.classify(ticket, NOW, WARNING).kind == "on_track"


def test_late_first_response_still_counts_as_breach():
    ticket = _ticket(
        response_due_at=NOW - timedelta(minutes=30),
        first_response_at=NOW - timedelta(minutes=10),
        solution_due_at=NOW + timedelta(hours=6),
    )

    assert SLAClassifier.classify(ticket, NOW, WARNING).kind == "breach"


def test_solution_breach_takes_precedence_over_response_breach():
    ticket = _ticket(
        response_due_at=NOW - timedelta(hours=3),
        solution_due_at=NOW - timedelta(minutes=1),
    )

    assert SLAClassifier.classify(ticket, NOW, WARNING).due_type == "solution"


def test_response_breach_takes_precedence_over_solution_warning():
    ticket = _ticket(
        response_due_at=NOW - timedelta(minutes=1),
        solution_due_at=NOW + timedelta(minutes=60),
    )

    result = SLAClassifier.classify(ticket, NOW, WARNING)

    assert (result.kind, result.due_type) == ("breach", "response")


def test_paused_status_is_excluded():
    ticket = _ticket(status="pending", solution_due_at=NOW - timedelta(hours=1))
    policy = StatusPolicy(status_id="pending", pauses_sla=True)

    assert SLAClassifier.classify(ticket, NOW, WARNING, policy).kind == "excluded"


def test_terminal_status_is_excluded():
    ticket = _ticket(status="closed", solution_due_at=NOW - timedelta(hours=1))
    policy = StatusPolicy(status_id="closed", is_terminal=True)

    assert SLAClassifier.classify(ticket, NOW, WARNING, policy).kind == "excluded"


def test_ticket_without_deadlines_is_on_track():
    assert SLAClassifier.classify(_ticket(), NOW, WARNING).kind == "on_track"


def test_event_carries_detection_time():
    ticket = _ticket(solution_due_at=NOW - timedelta(minutes=90))

    event = SLAClassifier.classify(ticket, NOW, WARNING).to_event(ticket.id, NOW)

    assert event.is_breach
    assert event.detected_at == NOW
    assert event.overdue == timedelta(minutes=90)
    assert event.time_left == timedelta(0)


def test_skewed_updated_at_is_clamped_and_still_classified():
    ticket = _ticket(updated_at=at(0, 8), solution_due_at=NOW - timedelta(minutes=5))

    assert ticket.updated_at == ticket.created_at
    assert SLAClassifier.classify(ticket, NOW, WARNING).kind == "breach"
