"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML engine-config watcher (watchdog hot reload)
- Slack webhook alerts with circuit breaker and retries
- APScheduler-backed periodic jobs with an in-process overlap guard
"""

import asyncio
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

import yaml
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.observers import Observer
from watchdog.events import FileSystemEventHandler

from shared.infrastructure.logging import get_context_logger, get_logger, log_latency
from config import settings
from core import ConfigurationException
from sla.application import ISLANotifier
from sla.domain import ClassificationEvent, SLAEngineConfig, Ticket

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Config file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager:
    """
    Thread-safe SLA engine configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and swap in a new
    SLAEngineConfig without restarting the service. A config that fails
    validation on reload is rejected and the previous one stays active.
    """

    def __init__(self):
        self._config: Optional[SLAEngineConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAEngineConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: if the file exists but is invalid
        """
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAEngineConfig:
        """Load and validate YAML config file."""
        if not path.exists():
            logger.warning(f"SLA config file not found: {path}, using defaults")
            return SLAEngineConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            return SLAEngineConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as e:
            raise ConfigurationException(f"Invalid SLA config {path}: {e}")

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (ConfigurationException, OSError) as e:
            logger.error(f"Failed to reload SLA config: {e}")
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "SLA configuration reloaded successfully",
            extra={
                "warning_window_minutes": new_config.warning_window_minutes,
                "dedup_window_minutes": new_config.dedup_window_minutes,
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if:
        - File doesn't exist (defaults are in use)
        - inotify is unavailable (some container runtimes)
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Config file doesn't exist, skipping file watch: {self._path}. "
                "Using default SLA configuration."
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(
                handler,
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info(f"Started watching config file: {self._path}")
        except OSError as e:
            logger.warning(
                f"File watching not available, using static config: {e}"
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAEngineConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackClient(ISLANotifier):
    """
    Slack webhook client with circuit breaker and retry logic.

    Alerts are best-effort: delivery problems are logged and reported
    through the return value, never raised into the scan.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        channel: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 3,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.slack_webhook_url
        self._channel = channel or settings.slack_channel
        self._timeout = timeout_seconds or settings.slack_timeout_seconds
        self._max_retries = max_retries
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def build_message(self, event: ClassificationEvent, ticket: Optional[Ticket] = None) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        if event.is_breach:
            header_text = "\U0001F6A8 SLA Breach Alert"
            timing = f"Overdue by {_minutes(event.overdue)} min"
        else:
            header_text = "⚠️ SLA Warning Alert"
            timing = f"Due in {_minutes(event.time_left)} min"

        fields = [
            {"type": "mrkdwn", "text": f"*Ticket:*\n{event.ticket_id}"},
            {"type": "mrkdwn", "text": f"*Due type:*\n{event.due_type.title()}"},
            {"type": "mrkdwn", "text": f"*Due at:*\n{event.due_at.isoformat()}"},
            {"type": "mrkdwn", "text": f"*Timing:*\n{timing}"},
        ]
        if ticket is not None:
            fields.append({"type": "mrkdwn", "text": f"*Priority:*\n{str(ticket.priority).title()}"})
            fields.append({"type": "mrkdwn", "text": f"*Status:*\n{ticket.status}"})

        return {
            "channel": self._channel,
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": header_text, "emoji": True}
                },
                {"type": "section", "fields": fields},
                {
                    "type": "context",
                    "elements": [
                        {"type": "mrkdwn", "text": f"Detected: {event.detected_at.isoformat()}"}
                    ]
                }
            ]
        }

    async def notify(self, event: ClassificationEvent, ticket: Optional[Ticket] = None) -> bool:
        """
        Send alert to Slack webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"ticket_id": event.ticket_id}
            )
            return False

        message = self.build_message(event, ticket)

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"ticket_id": event.ticket_id, "kind": event.kind}
                    )
                    return True

                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": event.ticket_id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


class PeriodicJob:
    """
    A periodic task that never overlaps with itself.

    Wraps APScheduler for timing and holds its own run-state: a run that
    starts while another is active is skipped and logged. The wrapped
    coroutine receives a fresh run id (e.g. SLA-1718000000-3fa2c1).
    """

    def __init__(
        self,
        name: str,
        func: Callable[[str], Awaitable[Any]],
        interval_seconds: int,
        run_id_prefix: str,
        initial_delay_seconds: float = 5.0
    ):
        self.name = name
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self._func = func
        self._run_id_prefix = run_id_prefix
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._is_running = False
        self.last_started_at: Optional[datetime] = None
        self.last_finished_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.last_result: Any = None

    def _new_run_id(self) -> str:
        return f"{self._run_id_prefix}-{int(time.time())}-{uuid4().hex[:6]}"

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def is_scheduled(self) -> bool:
        return (
            self._scheduler is not None
            and self._scheduler.running
            and self._scheduler.get_job(self.name) is not None
        )

    async def run_once(self) -> Optional[Any]:
        """
        Run the job now unless a run is already active.

        Returns:
            The job's result, or None if the run was skipped

        Errors from the job propagate to the caller.
        """
        if self._is_running:
            logger.info(f"{self.name} already running, skipping", extra={"job": self.name})
            return None

        self._is_running = True
        run_id = self._new_run_id()
        run_logger = get_context_logger(__name__, run_id)
        self.last_started_at = datetime.now(timezone.utc)
        run_logger.info(f"{self.name} started")

        try:
            with log_latency(logger, self.name, run_id=run_id):
                result = await self._func(run_id)
        except Exception as e:
            self.last_error = str(e)
            raise
        else:
            self.last_error = None
            self.last_result = result
            return result
        finally:
            self.last_finished_at = datetime.now(timezone.utc)
            self._is_running = False

    async def _scheduled_run(self) -> None:
        """Entry point for the scheduler; failures are logged so the schedule keeps going."""
        try:
            await self.run_once()
        except Exception:
            logger.exception(f"{self.name} run failed", extra={"job": self.name})

    def start(self) -> None:
        """Schedule the job. Must be called from within the running event loop."""
        if self.is_scheduled:
            logger.warning(f"{self.name} already scheduled")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._scheduled_run,
            "interval",
            seconds=self.interval_seconds,
            id=self.name,
            name=self.name,
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=self.initial_delay_seconds),
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()

        logger.info(
            f"{self.name} scheduled",
            extra={
                "interval_seconds": self.interval_seconds,
                "initial_delay_seconds": self.initial_delay_seconds
            }
        )

    def stop(self) -> None:
        """Stop future runs. An in-flight run is allowed to finish."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info(f"{self.name} stopped")

    def restart(self) -> None:
        self.stop()
        self.start()

    def health(self) -> Dict[str, Any]:
        return {
            "is_scheduled": self.is_scheduled,
            "is_currently_running": self._is_running,
            "interval_seconds": self.interval_seconds,
            "last_started_at": self.last_started_at,
            "last_finished_at": self.last_finished_at,
            "last_error": self.last_error,
        }
