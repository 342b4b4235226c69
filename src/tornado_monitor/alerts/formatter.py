"""Telegram message rendering for health, price and generic alerts.

Messages use Telegram's legacy Markdown (``*bold*``, ``` `code` ```) and end
with a hashtag footer so they can be searched in the chat history.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import assert_never

from tornado_monitor.alerts.models import (
    ConfigUpdateAlert,
    ConsecutiveFailuresAlert,
    FailureAlert,
    GenericAlert,
    HealthAlert,
    HealthAlertKind,
    PriceAlert,
    PriceChangeAlert,
    PriceThresholdAlert,
    QueueWarningAlert,
    RecoveryAlert,
    ServiceStatusAlert,
    StartupAlert,
)

HEALTH_EMOJI: dict[HealthAlertKind, str] = {
    HealthAlertKind.FAILURE: "🔴",
    HealthAlertKind.RECOVERY: "✅",
    HealthAlertKind.QUEUE_WARNING: "⚠️",
    HealthAlertKind.CONSECUTIVE_FAILURES: "🚨",
}

TEST_MESSAGE = "🧪 *Connection Test*\nTelegram is working correctly!"


def format_timestamp(ts: datetime) -> str:
    """Format a timestamp as ISO-8601 UTC with milliseconds, e.g. 2024-01-01T12:00:00.000Z."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_eth(amount: Decimal) -> str:
    """Format an ETH amount without exponent notation or trailing zeros."""
    return f"{amount.normalize():f}"


def format_seconds(value: float) -> str:
    """Format a duration in seconds without a trailing .0."""
    return f"{value:g}"


def hashtag(name: str) -> str:
    """Turn a network name into a hashtag body."""
    return "".join(name.split())


# ============================================================================
# Health
# ============================================================================


def render_health_alert(alert: HealthAlert, burst_position: int = 1, burst_limit: int = 0) -> str:
    """Render a health alert.

    Args:
        alert: The health alert payload.
        burst_position: 1-based position of this emission in the current burst.
        burst_limit: Burst size, shown as ``(n/limit)`` when n > 1.
    """
    emoji = HEALTH_EMOJI[alert.kind]
    count_indicator = f" ({burst_position}/{burst_limit})" if burst_position > 1 else ""

    lines = [
        f"{emoji} *Tornado Monitor Alert*{count_indicator}",
        f"*Time:* {format_timestamp(alert.timestamp)}",
        f"*Network:* {alert.network}",
        f"*Issue:* {alert.issue}",
    ]

    if isinstance(alert, ConsecutiveFailuresAlert):
        if alert.consecutive_failures > 1:
            lines.append(f"*Consecutive Failures:* {alert.consecutive_failures}")
        if alert.last_error:
            lines.append(f"*Last Error:* {alert.last_error}")
    elif isinstance(alert, QueueWarningAlert):
        lines.append(f"*Queue Size:* {alert.queue_size}")
    elif isinstance(alert, FailureAlert | RecoveryAlert):
        pass
    else:
        assert_never(alert)

    if not isinstance(alert, ConsecutiveFailuresAlert) and alert.response_time_ms is not None:
        lines.append(f"*Response Time:* {alert.response_time_ms}ms")

    lines.append(f"#HealthAlert #{hashtag(alert.network)}")
    return "\n".join(lines)


# ============================================================================
# Price
# ============================================================================


def _render_startup(alert: StartupAlert) -> str:
    lines = [
        "💰 *TORN Price Monitor Started*",
        f"*Time:* {format_timestamp(alert.timestamp)}",
        f"*Current Price:* `{format_eth(alert.current_price)} ETH`",
        f"*Monitor Interval:* {format_seconds(alert.interval)}s",
    ]
    if alert.price_change_threshold:
        lines.append(f"*Price Change Alert:* ±{alert.price_change_threshold:g}%")
    if alert.high_threshold:
        lines.append(f"*High Threshold:* {format_eth(alert.high_threshold)} ETH")
    if alert.low_threshold:
        lines.append(f"*Low Threshold:* {format_eth(alert.low_threshold)} ETH")
    return "\n".join(lines)


def _render_price_change(alert: PriceChangeAlert) -> str:
    direction = "📈" if alert.is_increase else "📉"
    sign = "+" if alert.is_increase else ""
    return "\n".join(
        [
            f"{direction} *TORN Price Alert*",
            f"*Time:* {format_timestamp(alert.timestamp)}",
            f"*Current Price:* `{format_eth(alert.current_price)} ETH`",
            f"*Previous Price:* `{format_eth(alert.previous_price)} ETH`",
            f"*Change:* `{sign}{alert.change_percent:.2f}%`",
            "#PriceChange",
        ]
    )


def _render_threshold(alert: PriceThresholdAlert) -> str:
    direction = "🔺" if alert.crossed_above else "🔻"
    crossed = "above" if alert.crossed_above else "below"
    return "\n".join(
        [
            f"{direction} *TORN Price Threshold Alert*",
            f"*Time:* {format_timestamp(alert.timestamp)}",
            f"Price crossed {crossed} threshold!",
            f"*Current Price:* `{format_eth(alert.current_price)} ETH`",
            f"*Threshold:* `{format_eth(alert.threshold)} ETH`",
            "#PriceAlert",
        ]
    )


def render_price_alert(alert: PriceAlert) -> str:
    """Render a price alert."""
    if isinstance(alert, StartupAlert):
        return _render_startup(alert)
    if isinstance(alert, PriceChangeAlert):
        return _render_price_change(alert)
    if isinstance(alert, PriceThresholdAlert):
        return _render_threshold(alert)
    if isinstance(alert, ConfigUpdateAlert | ServiceStatusAlert):
        return alert.message
    assert_never(alert)


# ============================================================================
# Generic
# ============================================================================


def generic_emoji(message: str) -> str:
    """Pick a severity marker from free-form alert text."""
    if "failing" in message or "failed" in message:
        return "🔴"
    if "unhealthy" in message:
        return "🟡"
    if "queue" in message:
        return "⚠️"
    return "🚨"


def render_generic_alert(
    alert: GenericAlert, burst_position: int = 1, burst_limit: int = 0
) -> str:
    """Render a generic alert."""
    count_indicator = f" ({burst_position}/{burst_limit})" if burst_position > 1 else ""
    return "\n".join(
        [
            f"{generic_emoji(alert.message)} *Tornado Monitor Alert*{count_indicator}",
            "",
            f"🌐 *Network:* {alert.scope}",
            f"⏰ *Time:* {format_timestamp(alert.timestamp)}",
            f"📋 *Issue:* {alert.message}",
            "",
            f"#TornadoAlert #{hashtag(alert.scope)}",
        ]
    )
