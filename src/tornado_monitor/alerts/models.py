"""Alert payloads, one immutable variant per alert kind.

Each variant carries only the fields relevant to its kind. ``scope`` and
``throttle_message`` form the throttle identity; the throttle message never
contains dynamic numbers (response times, counters, queue sizes) so repeated
occurrences of the same condition collapse to one key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from tornado_monitor.alerts.throttle import AlertKey

PRICE_SCOPE = "TORN"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HealthAlertKind(Enum):
    """Kinds of relayer health alerts."""

    FAILURE = "failure"
    RECOVERY = "recovery"
    QUEUE_WARNING = "queue_warning"
    CONSECUTIVE_FAILURES = "consecutive_failures"


class PriceAlertKind(Enum):
    """Kinds of TORN price alerts."""

    STARTUP = "startup"
    PRICE_CHANGE = "price_change"
    PRICE_THRESHOLD = "price_threshold"
    CONFIG_UPDATE = "config_update"
    SERVICE_STATUS = "service_status"


# Administrative, non-repeating notices that are never throttled
EXEMPT_PRICE_KINDS = frozenset(
    {PriceAlertKind.STARTUP, PriceAlertKind.CONFIG_UPDATE, PriceAlertKind.SERVICE_STATUS}
)


# ============================================================================
# Health alerts
# ============================================================================


@dataclass(frozen=True)
class FailureAlert:
    """A single failed health check."""

    network: str
    reason: str
    response_time_ms: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    kind: HealthAlertKind = field(default=HealthAlertKind.FAILURE, init=False)

    @property
    def issue(self) -> str:
        return f"API health check failed: {self.reason}"

    @property
    def throttle_message(self) -> str:
        return self.issue


@dataclass(frozen=True)
class RecoveryAlert:
    """The relayer is healthy again after one or more failed checks."""

    network: str
    response_time_ms: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    kind: HealthAlertKind = field(default=HealthAlertKind.RECOVERY, init=False)

    @property
    def issue(self) -> str:
        return "API has recovered and is now healthy"

    @property
    def throttle_message(self) -> str:
        return self.issue


@dataclass(frozen=True)
class QueueWarningAlert:
    """The relayer job queue is above the configured maximum."""

    network: str
    queue_size: int
    max_queue: int
    response_time_ms: int | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    kind: HealthAlertKind = field(default=HealthAlertKind.QUEUE_WARNING, init=False)

    @property
    def issue(self) -> str:
        return f"Queue size is high: {self.queue_size} (max: {self.max_queue})"

    @property
    def throttle_message(self) -> str:
        return f"Queue size is high (max: {self.max_queue})"


@dataclass(frozen=True)
class ConsecutiveFailuresAlert:
    """Health checks have failed at least ``maxConsecutiveFailures`` times in a row."""

    network: str
    consecutive_failures: int
    last_error: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    kind: HealthAlertKind = field(default=HealthAlertKind.CONSECUTIVE_FAILURES, init=False)

    @property
    def issue(self) -> str:
        return f"API has been unhealthy for {self.consecutive_failures} consecutive checks"

    @property
    def throttle_message(self) -> str:
        return "API has been unhealthy for consecutive checks"


HealthAlert = FailureAlert | RecoveryAlert | QueueWarningAlert | ConsecutiveFailuresAlert


# ============================================================================
# Price alerts
# ============================================================================


@dataclass(frozen=True)
class StartupAlert:
    """Sent once when the price monitor starts."""

    current_price: Decimal
    interval: float
    price_change_threshold: float | None = None
    high_threshold: Decimal | None = None
    low_threshold: Decimal | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    kind: PriceAlertKind = field(default=PriceAlertKind.STARTUP, init=False)

    @property
    def throttle_message(self) -> str:
        return "price monitor started"


@dataclass(frozen=True)
class PriceChangeAlert:
    """Price moved at least ``priceChangeThreshold`` percent between two checks."""

    current_price: Decimal
    previous_price: Decimal
    change_percent: float
    timestamp: datetime = field(default_factory=_utcnow)
    kind: PriceAlertKind = field(default=PriceAlertKind.PRICE_CHANGE, init=False)

    @property
    def is_increase(self) -> bool:
        return self.change_percent > 0

    @property
    def throttle_message(self) -> str:
        direction = "up" if self.is_increase else "down"
        return f"price change {direction}"


@dataclass(frozen=True)
class PriceThresholdAlert:
    """Price crossed a configured absolute threshold."""

    current_price: Decimal
    threshold: Decimal
    timestamp: datetime = field(default_factory=_utcnow)
    kind: PriceAlertKind = field(default=PriceAlertKind.PRICE_THRESHOLD, init=False)

    @property
    def crossed_above(self) -> bool:
        return self.current_price >= self.threshold

    @property
    def throttle_message(self) -> str:
        crossed = "above" if self.crossed_above else "below"
        return f"price crossed {crossed} {self.threshold}"


@dataclass(frozen=True)
class ConfigUpdateAlert:
    """Price monitor settings changed through a config reload."""

    message: str
    timestamp: datetime = field(default_factory=_utcnow)
    kind: PriceAlertKind = field(default=PriceAlertKind.CONFIG_UPDATE, init=False)

    @property
    def throttle_message(self) -> str:
        return self.message


@dataclass(frozen=True)
class ServiceStatusAlert:
    """Price monitor started or stopped through a config reload."""

    message: str
    timestamp: datetime = field(default_factory=_utcnow)
    kind: PriceAlertKind = field(default=PriceAlertKind.SERVICE_STATUS, init=False)

    @property
    def throttle_message(self) -> str:
        return self.message


PriceAlert = (
    StartupAlert | PriceChangeAlert | PriceThresholdAlert | ConfigUpdateAlert | ServiceStatusAlert
)


# ============================================================================
# Generic alerts
# ============================================================================


@dataclass(frozen=True)
class GenericAlert:
    """Free-form alert text scoped to a network or service."""

    scope: str
    message: str
    timestamp: datetime = field(default_factory=_utcnow)


def alert_key(alert: HealthAlert | PriceAlert | GenericAlert) -> AlertKey:
    """Throttle identity for an alert payload."""
    if isinstance(alert, GenericAlert):
        return AlertKey(alert.scope, alert.message)
    if isinstance(
        alert, FailureAlert | RecoveryAlert | QueueWarningAlert | ConsecutiveFailuresAlert
    ):
        return AlertKey(alert.network, alert.throttle_message)
    return AlertKey(PRICE_SCOPE, alert.throttle_message)
