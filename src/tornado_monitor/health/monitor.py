"""Relayer health polling with consecutive-failure tracking.

Each configured network gets its own ``RelayerHealthMonitor`` running on an
independent asyncio task. All monitors share one ``HealthAlertService`` so
alerts are throttled per (network, issue).
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from datetime import UTC, datetime
from typing import Any

import httpx
from pydantic import ValidationError

from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.models import (
    ConsecutiveFailuresAlert,
    FailureAlert,
    QueueWarningAlert,
    RecoveryAlert,
)
from tornado_monitor.alerts.services import HealthAlertService
from tornado_monitor.alerts.throttle import ThrottlePolicy
from tornado_monitor.config import HealthMonitoringConfig, NetworkConfig
from tornado_monitor.health.models import HealthCheckResult, RelayerStatus
from tornado_monitor.metrics import CONSECUTIVE_FAILURES, HEALTH_CHECK_LATENCY, HEALTH_CHECKS

logger = logging.getLogger(__name__)

USER_AGENT = "TornadoHealthMonitor/1.0"
INVALID_RESPONSE = "Invalid response structure"


class HealthCheckError(Exception):
    """Raised when the status endpoint cannot be fetched or decoded."""


class RelayerHealthMonitor:
    """Polls one relayer status endpoint and raises health alerts.

    State machine per check:

    - fetch error / invalid body / ``health.status != "true"``: failure,
      consecutive counter incremented, ``ConsecutiveFailuresAlert`` once the
      counter reaches ``maxConsecutiveFailures``;
    - queue above ``maxQueue``: counter incremented, ``QueueWarningAlert``;
    - healthy: counter reset, ``RecoveryAlert`` if it was non-zero.
    """

    def __init__(
        self,
        config: NetworkConfig,
        alert_service: HealthAlertService,
        *,
        alert_on_failure: bool = False,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Network settings (URL, interval, timeout, limits).
            alert_service: Sender for health alerts.
            alert_on_failure: Also send a FailureAlert for every failed check.
        """
        self.config = config
        self._alert_service = alert_service
        self._alert_on_failure = alert_on_failure

        self.consecutive_failures = 0
        self.last_successful_check: datetime | None = None
        self.last_error: str | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def is_running(self) -> bool:
        """Return True if the polling task is active."""
        return self._task is not None and not self._task.done()

    async def _fetch_status(self) -> Any:
        try:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.get(
                    self.config.api_url,
                    headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise HealthCheckError(f"Request timed out after {self.config.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise HealthCheckError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise HealthCheckError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            return response.json()
        except ValueError as e:
            raise HealthCheckError(f"Invalid JSON: {e}") from e

    async def check_health(self) -> HealthCheckResult:
        """Run one health check and update state / send alerts."""
        timestamp = datetime.now(UTC)
        start = time.monotonic()
        logger.debug("Checking %s relayer health...", self.name)

        try:
            data = await self._fetch_status()
        except HealthCheckError as e:
            result = HealthCheckResult(timestamp, False, self._elapsed_ms(start), error=str(e))
            await self._on_failure(result, outcome="error")
            return result

        response_time_ms = self._elapsed_ms(start)
        HEALTH_CHECK_LATENCY.labels(network=self.name).observe(response_time_ms / 1000)

        try:
            status = RelayerStatus.model_validate(data)
        except ValidationError:
            result = HealthCheckResult(timestamp, False, response_time_ms, error=INVALID_RESPONSE)
            await self._on_failure(result, outcome="invalid")
            return result

        result = HealthCheckResult(timestamp, False, response_time_ms, data=status)
        if not status.is_healthy:
            result.error = f"Error in health: {status.health.error}"
            await self._on_failure(result, outcome="unhealthy")
        elif status.current_queue > self.config.max_queue:
            result.error = f"High queue: {status.current_queue}"
            await self._on_queue_warning(result, status.current_queue)
        else:
            result.is_healthy = True
            await self._on_healthy(result, status)
        return result

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int(round((time.monotonic() - start) * 1000))

    def _count_failure(self, error: str | None) -> None:
        self.consecutive_failures += 1
        self.last_error = error
        CONSECUTIVE_FAILURES.labels(network=self.name).set(self.consecutive_failures)

    async def _on_healthy(self, result: HealthCheckResult, status: RelayerStatus) -> None:
        was_unhealthy = self.consecutive_failures > 0
        self.consecutive_failures = 0
        self.last_error = None
        self.last_successful_check = result.timestamp
        CONSECUTIVE_FAILURES.labels(network=self.name).set(0)
        HEALTH_CHECKS.labels(network=self.name, outcome="healthy").inc()

        logger.info(
            "%s API is healthy (%dms) queue=%d version=%s netId=%d tokens=%d",
            self.name,
            result.response_time_ms,
            status.current_queue,
            status.version,
            status.net_id,
            len(status.instances),
        )
        if isinstance(status.error_log, list) and status.error_log:
            logger.info("%s recent errors: %d", self.name, len(status.error_log))

        if was_unhealthy:
            await self._alert_service.send_alert(
                RecoveryAlert(network=self.name, response_time_ms=result.response_time_ms)
            )

    async def _on_failure(self, result: HealthCheckResult, *, outcome: str) -> None:
        self._count_failure(result.error)
        HEALTH_CHECKS.labels(network=self.name, outcome=outcome).inc()
        logger.error(
            "%s API is unhealthy: %s (%dms)", self.name, result.error, result.response_time_ms
        )

        if self._alert_on_failure:
            await self._alert_service.send_alert(
                FailureAlert(
                    network=self.name,
                    reason=result.error or "unknown error",
                    response_time_ms=result.response_time_ms,
                )
            )

        if self.consecutive_failures >= self.config.max_consecutive_failures:
            logger.error(
                "ALERT: %s unhealthy for %d consecutive checks (last success: %s)",
                self.name,
                self.consecutive_failures,
                self.last_successful_check.isoformat() if self.last_successful_check else "Never",
            )
            await self._alert_service.send_alert(
                ConsecutiveFailuresAlert(
                    network=self.name,
                    consecutive_failures=self.consecutive_failures,
                    last_error=result.error,
                )
            )

    async def _on_queue_warning(self, result: HealthCheckResult, queue_size: int) -> None:
        self._count_failure(result.error)
        HEALTH_CHECKS.labels(network=self.name, outcome="queue_warning").inc()
        logger.warning(
            "%s high queue warning: %d (%dms)", self.name, queue_size, result.response_time_ms
        )
        await self._alert_service.send_alert(
            QueueWarningAlert(
                network=self.name,
                queue_size=queue_size,
                max_queue=self.config.max_queue,
                response_time_ms=result.response_time_ms,
            )
        )

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.check_health()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error in %s health check: %s", self.name, e)
            await asyncio.sleep(self.config.interval)

    async def start(self) -> None:
        """Run an immediate check, then one every ``interval`` seconds."""
        if self.is_running:
            logger.info("%s monitor is already running", self.name)
            return

        logger.info(
            "Starting health monitor for %s (url=%s interval=%gs timeout=%gs max failures=%d)",
            self.name,
            self.config.api_url,
            self.config.interval,
            self.config.timeout,
            self.config.max_consecutive_failures,
        )
        self._task = asyncio.create_task(self._run_loop(), name=f"health:{self.name}")

    async def stop(self) -> None:
        """Cancel the polling task."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("%s health monitor stopped", self.name)

    def get_status(self) -> dict[str, Any]:
        """Current monitor state."""
        return {
            "network": self.name,
            "is_running": self.is_running,
            "consecutive_failures": self.consecutive_failures,
            "last_successful_check": (
                self.last_successful_check.isoformat() if self.last_successful_check else None
            ),
            "last_error": self.last_error,
        }


class MultiNetworkHealthMonitor:
    """Runs one ``RelayerHealthMonitor`` per configured network."""

    def __init__(
        self,
        config: HealthMonitoringConfig,
        alert_service: HealthAlertService | None = None,
    ) -> None:
        """Initialize monitors for every network.

        Args:
            config: Health monitoring section.
            alert_service: Shared sender; built from ``config.telegram`` when omitted.
        """
        self.config = config
        if alert_service is None:
            throttle = config.alert_throttle
            alert_service = HealthAlertService(
                TelegramChannel.from_config(config.telegram),
                ThrottlePolicy(
                    min_interval=throttle.min_interval,
                    burst_limit=throttle.burst_limit,
                    burst_window=throttle.burst_window,
                ),
            )
        self.alert_service = alert_service
        self.monitors = [
            RelayerHealthMonitor(
                network, alert_service, alert_on_failure=config.alert_on_failure
            )
            for network in config.networks
        ]
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start every monitor; one failing monitor does not block the others."""
        if self._running:
            logger.info("Multi-network monitor is already running")
            return

        self._running = True
        logger.info("Starting multi-network health monitor for %d networks", len(self.monitors))
        for monitor in self.monitors:
            try:
                await monitor.start()
            except Exception as e:
                logger.error("Failed to start monitor for %s: %s", monitor.name, e)

    async def stop(self) -> None:
        """Stop every monitor."""
        if not self._running:
            return
        self._running = False
        await asyncio.gather(*(monitor.stop() for monitor in self.monitors))
        logger.info("Multi-network health monitor stopped")

    def get_status(self) -> list[dict[str, Any]]:
        """Status of every network monitor."""
        return [monitor.get_status() for monitor in self.monitors]
