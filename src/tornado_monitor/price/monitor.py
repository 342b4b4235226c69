"""Periodic TORN price checks with change and threshold alerts."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.formatter import format_eth, format_seconds
from tornado_monitor.alerts.models import (
    ConfigUpdateAlert,
    PriceChangeAlert,
    PriceThresholdAlert,
    StartupAlert,
)
from tornado_monitor.alerts.services import PriceAlertService
from tornado_monitor.config import PriceMonitorConfig
from tornado_monitor.metrics import TORN_PRICE_ETH
from tornado_monitor.price.service import PriceServiceError, TornPriceService

logger = logging.getLogger(__name__)


def _utc_stamp() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


def _thresholds(config: PriceMonitorConfig) -> tuple[Decimal | None, Decimal | None]:
    if config.price_thresholds is None:
        return None, None
    return config.price_thresholds.high, config.price_thresholds.low


def describe_config_changes(old: PriceMonitorConfig, new: PriceMonitorConfig) -> list[str]:
    """Human-readable list of the settings that differ between two configs."""
    changes = []
    if old.interval != new.interval:
        changes.append(
            f"Interval: {format_seconds(old.interval)}s → {format_seconds(new.interval)}s"
        )
    if old.price_change_threshold != new.price_change_threshold:
        before = f"{old.price_change_threshold:g}%" if old.price_change_threshold else "off"
        after = f"{new.price_change_threshold:g}%" if new.price_change_threshold else "off"
        changes.append(f"Price change alert: {before} → {after}")

    old_high, old_low = _thresholds(old)
    new_high, new_low = _thresholds(new)
    for label, before_value, after_value in (
        ("High threshold", old_high, new_high),
        ("Low threshold", old_low, new_low),
    ):
        if before_value != after_value:
            before = f"{format_eth(before_value)} ETH" if before_value else "off"
            after = f"{format_eth(after_value)} ETH" if after_value else "off"
            changes.append(f"{label}: {before} → {after}")

    if old.api_urls != new.api_urls:
        changes.append(f"Price sources: {len(new.api_urls)} endpoint(s)")
    return changes


def config_update_message(changes: list[str]) -> str:
    """Telegram text for a price monitor config update."""
    lines = ["⚙️ *TORN Price Monitor Config Updated*", ""]
    lines.extend(f"• {change}" for change in changes)
    lines.extend(["", f"*{_utc_stamp()} UTC*"])
    return "\n".join(lines)


def service_status_message(
    status: Literal["started", "stopped"], config: PriceMonitorConfig | None
) -> str:
    """Telegram text announcing that a config reload started or stopped the monitor."""
    emoji = "✅" if status == "started" else "🛑"
    lines = [f"{emoji} *TORN Price Monitor {status.capitalize()}*", ""]

    if status == "started" and config is not None:
        lines.append(f"📊 Monitoring interval: {format_seconds(config.interval)}s")
        if config.price_change_threshold:
            lines.append(f"📈 Price change alert: {config.price_change_threshold:g}%")
        high, low = _thresholds(config)
        if high:
            lines.append(f"🚨 High price alert: {format_eth(high)} ETH")
        if low:
            lines.append(f"⬇️ Low price alert: {format_eth(low)} ETH")
        lines.extend(["", f"*Service auto-{status} via config reload*"])
    else:
        lines.append(f"*Service {status} via config reload*")

    lines.extend(["", f"*{_utc_stamp()} UTC*"])
    return "\n".join(lines)


class TornPriceMonitor:
    """Polls the TORN price and alerts on large moves and threshold crossings."""

    def __init__(
        self,
        config: PriceMonitorConfig,
        alert_service: PriceAlertService | None = None,
        price_service: TornPriceService | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Price monitor section.
            alert_service: Price alert sender; built from ``config.telegram`` when omitted.
            price_service: Price source; built from ``config.api_urls`` when omitted.
        """
        self.config = config
        self.alert_service = alert_service or PriceAlertService(
            TelegramChannel.from_config(config.telegram)
        )
        self.price_service = price_service or TornPriceService(config.api_urls)
        self._last_price: Decimal | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def current_price(self) -> Decimal | None:
        """Last observed price in ETH."""
        return self._last_price

    async def start(self) -> None:
        """Fetch the initial price, announce startup and begin polling."""
        if self.is_running:
            logger.info("TORN price monitor is already running")
            return

        logger.info("Starting TORN price monitoring...")
        try:
            price = await self.price_service.get_torn_price_eth()
            self._set_price(price)
            logger.info("Initial TORN price: %s ETH", format_eth(price))
        except PriceServiceError as e:
            logger.error("Failed to get initial TORN price: %s", e)
        else:
            high, low = _thresholds(self.config)
            await self.alert_service.send_alert(
                StartupAlert(
                    current_price=price,
                    interval=self.config.interval,
                    price_change_threshold=self.config.price_change_threshold,
                    high_threshold=high,
                    low_threshold=low,
                )
            )

        self._start_timer()
        logger.info("TORN price monitor started (interval: %gs)", self.config.interval)

    async def stop(self) -> None:
        """Cancel the polling task."""
        if not self.is_running:
            logger.info("TORN price monitor is not running")
            return
        await self._stop_timer()
        logger.info("TORN price monitor stopped")

    def _start_timer(self) -> None:
        self._task = asyncio.create_task(self._run_loop(), name="torn-price")

    async def _stop_timer(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval)
            try:
                await self.check_price()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Error during price check: %s", e)

    def _set_price(self, price: Decimal) -> None:
        self._last_price = price
        TORN_PRICE_ETH.set(float(price))

    async def check_price(self) -> None:
        """Fetch the price and compare it with the previous observation."""
        try:
            current = await self.price_service.get_torn_price_eth()
        except PriceServiceError as e:
            logger.error("Failed to check TORN price: %s", e)
            return

        previous = self._last_price
        if previous is not None and previous > 0:
            await self._check_change(current, previous)
            await self._check_thresholds(current, previous)

        self._set_price(current)
        logger.info("TORN Price: %s ETH", format_eth(current))

    async def _check_change(self, current: Decimal, previous: Decimal) -> None:
        threshold = self.config.price_change_threshold
        if not threshold:
            return
        change_percent = float((current - previous) / previous * 100)
        if abs(change_percent) >= threshold:
            await self.alert_service.send_alert(
                PriceChangeAlert(
                    current_price=current,
                    previous_price=previous,
                    change_percent=change_percent,
                )
            )

    async def _check_thresholds(self, current: Decimal, previous: Decimal) -> None:
        high, low = _thresholds(self.config)
        if high and previous < high <= current:
            await self.alert_service.send_alert(
                PriceThresholdAlert(current_price=current, threshold=high)
            )
        if low and previous > low >= current:
            await self.alert_service.send_alert(
                PriceThresholdAlert(current_price=current, threshold=low)
            )

    async def update_config(self, new_config: PriceMonitorConfig) -> None:
        """Apply a reloaded config without losing the last observed price.

        The polling timer restarts when the interval changed, and a
        ``ConfigUpdateAlert`` lists what changed.
        """
        old_config = self.config
        changes = describe_config_changes(old_config, new_config)
        self.config = new_config

        if new_config.telegram != old_config.telegram:
            self.alert_service.channel = TelegramChannel.from_config(new_config.telegram)
        if new_config.api_urls != old_config.api_urls:
            self.price_service.api_urls = list(new_config.api_urls)

        if not changes:
            logger.debug("TORN price monitor config unchanged")
            return

        logger.info("TORN price monitor config updated: %s", "; ".join(changes))
        if new_config.interval != old_config.interval and self.is_running:
            await self._stop_timer()
            self._start_timer()

        await self.alert_service.send_alert(
            ConfigUpdateAlert(message=config_update_message(changes))
        )

    def get_status(self) -> dict[str, Any]:
        """Current monitor state."""
        high, low = _thresholds(self.config)
        return {
            "is_running": self.is_running,
            "last_price": str(self._last_price) if self._last_price is not None else None,
            "interval": self.config.interval,
            "price_change_threshold": self.config.price_change_threshold,
            "price_thresholds": {
                "high": str(high) if high is not None else None,
                "low": str(low) if low is not None else None,
            },
        }
