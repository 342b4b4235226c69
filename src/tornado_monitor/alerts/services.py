"""Alert senders: throttle decision, rendering and delivery.

Each sender owns one ``AlertThrottle`` and one ``TelegramChannel``. The
decide-send-record sequence for a key runs under that key's lock, and an
emission is recorded only after Telegram acknowledged the message, so a
failed send never consumes burst budget.
"""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Callable
from typing import Generic, TypeVar

from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.formatter import (
    render_generic_alert,
    render_health_alert,
    render_price_alert,
)
from tornado_monitor.alerts.models import (
    EXEMPT_PRICE_KINDS,
    GenericAlert,
    HealthAlert,
    PriceAlert,
    alert_key,
)
from tornado_monitor.alerts.throttle import AlertThrottle, ThrottlePolicy
from tornado_monitor.metrics import ALERTS_FAILED, ALERTS_SENT, ALERTS_SUPPRESSED

logger = logging.getLogger(__name__)

AlertT = TypeVar("AlertT")

Clock = Callable[[], float]

# Defaults carried over from the alerting behaviour of each domain
HEALTH_THROTTLE_POLICY = ThrottlePolicy(min_interval=300.0, burst_limit=3, burst_window=900.0)
PRICE_THROTTLE_POLICY = ThrottlePolicy(min_interval=60.0, burst_limit=0, burst_window=900.0)
GENERIC_THROTTLE_POLICY = ThrottlePolicy(min_interval=300.0, burst_limit=3, burst_window=900.0)


class ThrottledAlertService(abc.ABC, Generic[AlertT]):
    """Base class for domain alert senders."""

    domain = "generic"

    def __init__(
        self,
        channel: TelegramChannel,
        policy: ThrottlePolicy,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize the sender.

        Args:
            channel: Telegram channel used for delivery.
            policy: Throttle parameters for this domain.
            clock: Monotonic time source in seconds.
        """
        self.channel = channel
        self.throttle = AlertThrottle(policy)
        self._clock = clock

    @property
    def is_enabled(self) -> bool:
        """True when the channel has credentials and is enabled."""
        return self.channel.enabled

    def is_exempt(self, alert: AlertT) -> bool:
        """Return True for alerts that bypass throttling."""
        return False

    @abc.abstractmethod
    def render(self, alert: AlertT, burst_position: int) -> str:
        """Render alert text for Telegram."""

    async def send_alert(self, alert: AlertT) -> bool:
        """Send an alert unless it is throttled.

        Returns:
            True if the alert was delivered; False if the channel is
            disabled, the alert was throttled, or delivery failed.
        """
        if not self.is_enabled:
            logger.debug("Telegram disabled, skipping %s alert", self.domain)
            return False

        if self.is_exempt(alert):
            return await self._deliver(self.render(alert, 1))

        key = alert_key(alert)
        async with self.throttle.lock(key):
            now = self._clock()
            if not self.throttle.should_emit(key, now):
                ALERTS_SUPPRESSED.labels(domain=self.domain).inc()
                logger.info("Skipping %s alert '%s' (throttled)", self.domain, key)
                return False

            position = self.throttle.burst_position(key, now)
            success = await self._deliver(self.render(alert, position))
            if success:
                self.throttle.record_emission(key, now)
                logger.info(
                    "%s alert sent (%d/%d in burst): %s",
                    self.domain.capitalize(),
                    position,
                    self.throttle.policy.burst_limit,
                    key,
                )
            return success

    async def _deliver(self, text: str) -> bool:
        try:
            success = await self.channel.send(text)
        except Exception as e:
            logger.error("Error sending %s alert: %s", self.domain, e)
            success = False

        if success:
            ALERTS_SENT.labels(domain=self.domain).inc()
        else:
            ALERTS_FAILED.labels(domain=self.domain).inc()
            logger.error("Failed to deliver %s alert", self.domain)
        return success

    async def test_connection(self) -> bool:
        """Send the canary message, bypassing the throttle."""
        if not self.is_enabled:
            return False
        return await self.channel.test_connection()


class HealthAlertService(ThrottledAlertService[HealthAlert]):
    """Relayer health alerts with burst-then-interval throttling."""

    domain = "health"

    def __init__(
        self,
        channel: TelegramChannel,
        policy: ThrottlePolicy = HEALTH_THROTTLE_POLICY,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(channel, policy, clock=clock)

    def render(self, alert: HealthAlert, burst_position: int) -> str:
        return render_health_alert(alert, burst_position, self.throttle.policy.burst_limit)


class PriceAlertService(ThrottledAlertService[PriceAlert]):
    """TORN price alerts; startup, config and service notices are never throttled."""

    domain = "price"

    def __init__(
        self,
        channel: TelegramChannel,
        policy: ThrottlePolicy = PRICE_THROTTLE_POLICY,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(channel, policy, clock=clock)

    def is_exempt(self, alert: PriceAlert) -> bool:
        return alert.kind in EXEMPT_PRICE_KINDS

    def render(self, alert: PriceAlert, burst_position: int) -> str:
        return render_price_alert(alert)


class GenericAlertService(ThrottledAlertService[GenericAlert]):
    """Free-form alerts keyed by scope and message text."""

    domain = "generic"

    def __init__(
        self,
        channel: TelegramChannel,
        policy: ThrottlePolicy = GENERIC_THROTTLE_POLICY,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        super().__init__(channel, policy, clock=clock)

    def render(self, alert: GenericAlert, burst_position: int) -> str:
        return render_generic_alert(alert, burst_position, self.throttle.policy.burst_limit)
