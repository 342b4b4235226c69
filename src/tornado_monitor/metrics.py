"""Prometheus metrics shared by the monitors and the status server."""

from prometheus_client import Counter, Gauge, Histogram

ALERTS_SENT = Counter(
    "tornado_alerts_sent_total",
    "Alerts delivered to Telegram",
    ["domain"],
)

ALERTS_SUPPRESSED = Counter(
    "tornado_alerts_suppressed_total",
    "Alerts suppressed by the throttle",
    ["domain"],
)

ALERTS_FAILED = Counter(
    "tornado_alerts_failed_total",
    "Alerts that could not be delivered",
    ["domain"],
)

HEALTH_CHECKS = Counter(
    "tornado_health_checks_total",
    "Relayer health checks by outcome",
    ["network", "outcome"],
)

HEALTH_CHECK_LATENCY = Histogram(
    "tornado_health_check_latency_seconds",
    "Relayer status endpoint response time",
    ["network"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

CONSECUTIVE_FAILURES = Gauge(
    "tornado_health_consecutive_failures",
    "Current consecutive failed health checks",
    ["network"],
)

TORN_PRICE_ETH = Gauge(
    "tornado_torn_price_eth",
    "Last observed TORN price in ETH",
)

STAKE_BURNED_EVENTS = Counter(
    "tornado_stake_burned_events_total",
    "StakeBurned events processed by outcome",
    ["outcome"],
)
