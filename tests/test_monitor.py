from datetime import timedelta

import pytest

from core import ExternalServiceException, PersistenceFailure
from sla.application import EscalationDispatcher, ISLANotifier, SLAMonitorService, format_duration
from sla.domain import EscalationConfig, SLAEngineConfig, StatusPolicy, Ticket
from sla.infrastructure import StaticConfigProvider

from conftest import at

NOW = at(2, 12)


class RecordingNotifier(ISLANotifier):

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    async def notify(self, event, ticket=None):
        if self.fail:
            raise ExternalServiceException("slack", "webhook unreachable")
        self.events.append((event, ticket))
        return True


def _monitor(gateway, config_provider, notifier=None) -> SLAMonitorService:
    return SLAMonitorService(
        gateway, config_provider, EscalationDispatcher(gateway, config_provider, notifier)
    )


def _add(gateway, id, solution_due_at, **overrides) -> Ticket:
    values = dict(
        id=id, priority="medium", status="open", created_at=at(0, 9), solution_due_at=solution_due_at
    )
    values.update(overrides)
    return gateway.add(Ticket(**values))


async def test_scan_counts_each_classification(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(seconds=1))
    _add(gateway, 2, NOW + timedelta(minutes=30))
    _add(gateway, 3, NOW + timedelta(minutes=90), status="pending")
    _add(gateway, 4, NOW + timedelta(hours=3))
    _add(gateway, 5, NOW - timedelta(hours=1), status="closed")

    summary = await _monitor(gateway, config_provider).scan_once(now=NOW, run_id="SLA-1-abc")

    # 4 is outside the query horizon, 5 is terminal
    assert summary.run_id == "SLA-1-abc"
    assert summary.scanned == 3
    assert summary.breaches == 1
    assert summary.warnings == 1
    assert summary.excluded == 1
    assert summary.failed == 0


async def test_breach_writes_annotation_and_escalates(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(minutes=65))

    await _monitor(gateway, config_provider).scan_once(now=NOW)

    breach = gateway.annotations_for(1, "sla_breach")
    assert len(breach) == 1
    assert breach[0].is_internal
    assert breach[0].due_type == "solution"
    assert breach[0].content.startswith("SLA BREACH: solution deadline")
    assert "exceeded by 1h 5m" in breach[0].content

    assert gateway.tickets[1].priority == "critical"
    escalation = gateway.annotations_for(1, "sla_escalation")
    assert len(escalation) == 1
    assert "from medium to critical" in escalation[0].content


async def test_warning_does_not_escalate(gateway, config_provider):
    _add(gateway, 1, NOW + timedelta(minutes=30))

    await _monitor(gateway, config_provider).scan_once(now=NOW)

    warning = gateway.annotations_for(1, "sla_warning")
    assert len(warning) == 1
    assert "is due in 30m" in warning[0].content
    assert gateway.tickets[1].priority == "medium"
    assert gateway.annotations_for(1, "sla_escalation") == []


async def test_repeated_scans_annotate_once(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(seconds=1))
    monitor = _monitor(gateway, config_provider)

    first = await monitor.scan_once(now=NOW)
    second = await monitor.scan_once(now=NOW + timedelta(minutes=1))

    assert first.deduplicated == 0
    assert second.deduplicated == 1
    assert len(gateway.annotations_for(1, "sla_breach")) == 1


async def test_annotation_repeats_after_dedup_window(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(seconds=1))
    monitor = _monitor(gateway, config_provider)

    await monitor.scan_once(now=NOW)
    await monitor.scan_once(now=NOW + timedelta(minutes=31))

    assert len(gateway.annotations_for(1, "sla_breach")) == 2


async def test_warning_then_breach_are_separate_events(gateway, config_provider):
    _add(gateway, 1, NOW + timedelta(minutes=10))
    monitor = _monitor(gateway, config_provider)

    await monitor.scan_once(now=NOW)
    await monitor.scan_once(now=NOW + timedelta(minutes=15))

    assert len(gateway.annotations_for(1, "sla_warning")) == 1
    assert len(gateway.annotations_for(1, "sla_breach")) == 1


async def test_already_critical_ticket_is_not_escalated_again(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(minutes=5), priority="critical")

    await _monitor(gateway, config_provider).scan_once(now=NOW)

    assert gateway.annotations_for(1, "sla_escalation") == []
    assert gateway.updates == []


async def test_escalation_can_be_disabled(gateway):
    provider = StaticConfigProvider(SLAEngineConfig(escalation=EscalationConfig(enabled=False)))
    _add(gateway, 1, NOW - timedelta(minutes=5))

    await _monitor(gateway, provider).scan_once(now=NOW)

    assert gateway.tickets[1].priority == "medium"
    assert len(gateway.annotations_for(1, "sla_breach")) == 1


async def test_status_policy_from_store_wins_over_config(gateway, config_provider):
    gateway.status_policies["waiting_customer"] = StatusPolicy("waiting_customer", pauses_sla=True)
    _add(gateway, 1, NOW - timedelta(minutes=5), status="waiting_customer")

    summary = await _monitor(gateway, config_provider).scan_once(now=NOW)

    assert summary.excluded == 1
    assert gateway.annotations == []


async def test_one_failing_ticket_does_not_abort_the_batch(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(minutes=5))
    _add(gateway, 2, NOW - timedelta(minutes=5))
    _add(gateway, 3, NOW - timedelta(minutes=5))
    gateway.failing_tickets.add(2)

    summary = await _monitor(gateway, config_provider).scan_once(now=NOW)

    assert summary.scanned == 3
    assert summary.failed == 1
    assert len(gateway.annotations_for(1, "sla_breach")) == 1
    assert len(gateway.annotations_for(3, "sla_breach")) == 1


async def test_notifier_receives_events(gateway, config_provider):
    notifier = RecordingNotifier()
    _add(gateway, 1, NOW - timedelta(minutes=5))

    await _monitor(gateway, config_provider, notifier).scan_once(now=NOW)

    (event, ticket), = notifier.events
    assert event.ticket_id == 1
    assert event.kind == "breach"
    assert ticket.priority == "critical"


async def test_notifier_failure_is_tolerated(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(minutes=5))

    summary = await _monitor(gateway, config_provider, RecordingNotifier(fail=True)).scan_once(now=NOW)

    assert summary.failed == 0
    assert len(gateway.annotations_for(1, "sla_breach")) == 1


@pytest.mark.parametrize("delta,expected", [
    (timedelta(0), "0m"),
    (timedelta(minutes=5), "5m"),
    (timedelta(hours=2), "2h"),
    (timedelta(days=1, hours=2, minutes=5), "1d 2h 5m"),
])
def test_format_duration(delta, expected):
    assert format_duration(delta) == expected


async def test_failed_escalation_is_retried_on_next_scan(gateway, config_provider):
    _add(gateway, 1, NOW - timedelta(minutes=10))
    store_update = gateway.update_ticket_fields
    calls = []

    async def flaky_update(ticket_id, fields):
        calls.append(fields)
        if len(calls) == 1:
            raise PersistenceFailure("update_ticket_fields", "deadlock detected")
        await store_update(ticket_id, fields)

    gateway.update_ticket_fields = flaky_update
    monitor = _monitor(gateway, config_provider)

    first = await monitor.scan_once(now=NOW)

    assert (first.breaches, first.failed) == (1, 1)
    assert gateway.tickets[1].priority == "medium"
    assert gateway.annotations_for(1) == []

    second = await monitor.scan_once(now=NOW + timedelta(minutes=1))

    assert (second.breaches, second.deduplicated, second.failed) == (1, 0, 0)
    assert gateway.tickets[1].priority == "critical"
    assert [a.event_kind for a in gateway.annotations_for(1)] == ["sla_breach", "sla_escalation"]
