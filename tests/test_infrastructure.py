import asyncio
from datetime import timedelta

import httpx
import pytest

from core import ConfigurationException
from sla.domain import ClassificationEvent
from sla.infrastructure import CircuitBreaker, PeriodicJob, SLAConfigManager, SlackClient

from conftest import at


# ========== PeriodicJob ==========

async def test_run_once_passes_prefixed_run_id():
    seen = []

    async def job(run_id):
        seen.append(run_id)
        return "done"

    periodic = PeriodicJob("sla_monitor", job, interval_seconds=300, run_id_prefix="SLA")

    assert await periodic.run_once() == "done"
    assert seen[0].startswith("SLA-")
    assert periodic.last_result == "done"
    assert periodic.last_error is None
    assert periodic.last_finished_at >= periodic.last_started_at


async def test_overlapping_run_is_skipped():
    release = asyncio.Event()
    calls = []

    async def slow(run_id):
        calls.append(run_id)
        await release.wait()
        return len(calls)

    periodic = PeriodicJob("sla_monitor", slow, interval_seconds=300, run_id_prefix="SLA")

    first = asyncio.create_task(periodic.run_once())
    await asyncio.sleep(0)
    assert periodic.is_running

    assert await periodic.run_once() is None

    release.set()
    assert await first == 1
    assert len(calls) == 1
    assert not periodic.is_running


async def test_run_once_propagates_errors_and_resets_state():
    async def broken(run_id):
        raise RuntimeError("database is down")

    periodic = PeriodicJob("time_based_automation", broken, interval_seconds=300, run_id_prefix="AUTO")

    with pytest.raises(RuntimeError):
        await periodic.run_once()

    assert not periodic.is_running
    assert periodic.last_error == "database is down"
    assert periodic.health()["last_error"] == "database is down"


async def test_scheduled_run_swallows_errors():
    async def broken(run_id):
        raise RuntimeError("boom")

    periodic = PeriodicJob("sla_monitor", broken, interval_seconds=300, run_id_prefix="SLA")

    await periodic._scheduled_run()

    assert periodic.last_error == "boom"


async def test_start_and_stop_schedule():
    async def job(run_id):
        return None

    periodic = PeriodicJob(
        "sla_monitor", job, interval_seconds=300, run_id_prefix="SLA", initial_delay_seconds=3600
    )

    periodic.start()
    try:
        assert periodic.is_scheduled
        assert periodic.health()["is_scheduled"] is True
        assert periodic.health()["interval_seconds"] == 300
    finally:
        periodic.stop()

    assert not periodic.is_scheduled
    assert periodic.health()["is_currently_running"] is False


# ========== SLAConfigManager ==========

def test_config_loads_from_yaml(tmp_path):
    path = tmp_path / "sla_config.yaml"
    path.write_text(
        "warning_window_minutes: 60\n"
        "dedup_window_minutes: 15\n"
        "priority_order: [low, medium, high, urgent]\n"
        "fallback_calendar:\n"
        "  timezone: Europe/Berlin\n"
        "  working_hours:\n"
        "    monday: {start: '08:00', end: '16:00'}\n"
        "status_policies:\n"
        "  open: {}\n"
        "  done: {is_terminal: true}\n"
    )
    manager = SLAConfigManager()

    config = manager.load(path)

    assert config.warning_window == timedelta(minutes=60)
    assert config.dedup_window == timedelta(minutes=15)
    assert config.max_priority == "urgent"
    assert config.terminal_statuses() == ["done"]
    assert config.fallback_calendar.to_calendar().timezone == "Europe/Berlin"
    assert manager.config is config


def test_missing_config_file_uses_defaults(tmp_path):
    manager = SLAConfigManager()

    config = manager.load(tmp_path / "absent.yaml")

    assert config.warning_window_minutes == 120
    assert config.max_priority == "critical"
    assert config.status_policy("pending").pauses_sla


def test_invalid_config_fails_initial_load(tmp_path):
    path = tmp_path / "sla_config.yaml"
    path.write_text("warning_window_minutes: -5\n")

    with pytest.raises(ConfigurationException):
        SLAConfigManager().load(path)


def test_invalid_reload_keeps_previous_config(tmp_path):
    path = tmp_path / "sla_config.yaml"
    path.write_text("warning_window_minutes: 45\n")
    manager = SLAConfigManager()
    manager.load(path)

    path.write_text("priority_order: []\n")
    assert manager.reload() is False
    assert manager.config.warning_window_minutes == 45

    path.write_text("warning_window_minutes: 90\n")
    assert manager.reload() is True
    assert manager.config.warning_window_minutes == 90


# ========== SlackClient ==========

def _event(kind="breach"):
    return ClassificationEvent(
        ticket_id=42, kind=kind, due_type="solution", detected_at=at(2, 12), due_at=at(2, 11),
    )


async def test_slack_posts_block_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, text="ok")

    client = SlackClient(
        webhook_url="https://hooks.slack.test/T000",
        channel="#sla",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    assert await client.notify(_event()) is True
    assert len(requests) == 1
    assert b"SLA Breach Alert" in requests[0].content
    await client.close()


async def test_slack_without_webhook_is_disabled():
    client = SlackClient(webhook_url="")

    assert not client.enabled
    assert await client.notify(_event()) is False


async def test_slack_failure_returns_false():
    def handler(request):
        return httpx.Response(500)

    client = SlackClient(
        webhook_url="https://hooks.slack.test/T000",
        max_retries=1,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )

    assert await client.notify(_event("warning")) is False
    await client.close()


def test_warning_message_reports_time_left():
    event = ClassificationEvent(
        ticket_id=7, kind="warning", due_type="response", detected_at=at(2, 11), due_at=at(2, 12),
    )

    message = SlackClient(webhook_url="https://hooks.slack.test/T000").build_message(event)

    assert message["blocks"][0]["text"]["text"].endswith("SLA Warning Alert")
    assert "Due in 60 min" in str(message["blocks"][1])


def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert not breaker.allow_request()

    breaker.record_success()
    assert breaker.allow_request()
