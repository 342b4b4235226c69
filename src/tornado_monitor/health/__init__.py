"""Relayer health monitoring."""

from tornado_monitor.health.models import HealthCheckResult, RelayerHealth, RelayerStatus
from tornado_monitor.health.monitor import (
    HealthCheckError,
    MultiNetworkHealthMonitor,
    RelayerHealthMonitor,
)

__all__ = [
    "HealthCheckError",
    "HealthCheckResult",
    "MultiNetworkHealthMonitor",
    "RelayerHealth",
    "RelayerHealthMonitor",
    "RelayerStatus",
]
