"""Top-level service wiring the monitors together.

Usage:
    ```python
    service = TornadoMonitorService(config, settings, loader=loader)
    await service.start()
    ...
    await service.stop()
    ```
"""

from __future__ import annotations

import logging
from typing import Any, Literal

from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.models import ServiceStatusAlert
from tornado_monitor.alerts.services import GenericAlertService
from tornado_monitor.config import (
    ConfigFile,
    ConfigLoader,
    ConfigWatcher,
    PriceMonitorConfig,
    Settings,
)
from tornado_monitor.events.listener import StakeBurnedListener
from tornado_monitor.health.monitor import MultiNetworkHealthMonitor
from tornado_monitor.price.monitor import TornPriceMonitor, service_status_message
from tornado_monitor.price.service import TornPriceService
from tornado_monitor.status import StatusServer
from tornado_monitor.storage.database import Database

logger = logging.getLogger(__name__)


class TornadoMonitorService:
    """Runs the enabled components of one configuration.

    Components:
        - multi-network relayer health monitor
        - StakeBurned listener (historical sync, then polling)
        - TORN price monitor
        - config file watcher and optional HTTP status server

    Only the price monitor follows config reloads; health and listener
    changes are logged and take effect on restart.
    """

    def __init__(
        self,
        config: ConfigFile,
        settings: Settings,
        *,
        loader: ConfigLoader | None = None,
        health_port: int | None = None,
        enable_status_server: bool = True,
    ) -> None:
        """Initialize the service.

        Args:
            config: Validated configuration.
            settings: Environment settings.
            loader: Loader that produced ``config``; enables hot reload.
            health_port: Status server port; defaults to ``settings.health_port``.
            enable_status_server: Start the HTTP status server.
        """
        self.config = config
        self.settings = settings
        self.loader = loader

        self.health_monitor: MultiNetworkHealthMonitor | None = None
        self.stake_burned_listener: StakeBurnedListener | None = None
        self.price_monitor: TornPriceMonitor | None = None
        self.database: Database | None = None

        self.watcher = ConfigWatcher(loader) if loader is not None else None
        self.status_server = (
            StatusServer(self.get_status, health_port or settings.health_port)
            if enable_status_server
            else None
        )
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start every enabled component."""
        logger.info("Starting Tornado Monitor Service...")

        health = self.config.health_monitoring
        if health is not None and health.enabled:
            logger.info("Initializing health monitoring service...")
            self.health_monitor = MultiNetworkHealthMonitor(health)
            await self.health_monitor.start()

        await self._start_listener()

        price = self.config.torn_price_monitor
        if price is not None and price.enabled:
            logger.info("Initializing TORN price monitor...")
            self.price_monitor = TornPriceMonitor(price)
            await self.price_monitor.start()

        if self.watcher is not None:
            self.watcher.register(self.handle_config_reload)
            await self.watcher.start()

        if self.status_server is not None:
            await self.status_server.start()

        self._running = True
        logger.info("All services started successfully")

    async def _start_listener(self) -> None:
        listener_config = self.config.stake_burned_listener
        if listener_config is None or not listener_config.enabled:
            return

        url = self.settings.database_url
        if url is None and listener_config.database is not None:
            url = listener_config.database.url
        if not url:
            logger.warning("StakeBurned listener enabled but no database configured, skipping")
            return

        logger.info("Initializing StakeBurned event listener...")
        self.database = Database(url)
        await self.database.create_tables()

        price_urls = (
            self.config.torn_price_monitor.api_urls if self.config.torn_price_monitor else None
        )
        self.stake_burned_listener = StakeBurnedListener(
            listener_config,
            self.database,
            TornPriceService(price_urls),
            GenericAlertService(TelegramChannel.from_config(listener_config.telegram)),
        )
        await self.stake_burned_listener.sync_historical()
        await self.stake_burned_listener.start()

    async def stop(self) -> None:
        """Stop every running component."""
        logger.info("Stopping Tornado Monitor Service...")
        self._running = False

        if self.watcher is not None:
            await self.watcher.stop()

        if self.health_monitor is not None:
            logger.info("Stopping health monitoring service...")
            await self.health_monitor.stop()

        if self.stake_burned_listener is not None:
            logger.info("Stopping StakeBurned event listener...")
            await self.stake_burned_listener.stop()

        if self.database is not None:
            await self.database.close()

        if self.price_monitor is not None:
            logger.info("Stopping TORN price monitor...")
            await self.price_monitor.stop()

        if self.status_server is not None:
            await self.status_server.stop()

        logger.info("All services stopped")

    async def _notify_price_monitor(
        self,
        monitor: TornPriceMonitor,
        status: Literal["started", "stopped"],
        config: PriceMonitorConfig | None,
    ) -> None:
        if not monitor.alert_service.is_enabled:
            return
        message = service_status_message(status, config)
        if await monitor.alert_service.send_alert(ServiceStatusAlert(message=message)):
            logger.info("Service %s notification sent to Telegram", status)

    async def handle_config_reload(self, new_config: ConfigFile) -> None:
        """Apply a reloaded configuration.

        The price monitor is updated in place, stopped or started as the new
        config dictates; start and stop are announced on Telegram.
        """
        logger.info("Handling configuration reload...")
        old_config = self.config
        self.config = new_config

        new_price = new_config.torn_price_monitor
        if self.price_monitor is not None and new_price is not None:
            if new_price.enabled:
                await self.price_monitor.update_config(new_price)
            else:
                logger.info("TORN price monitor disabled in new config, stopping...")
                await self._notify_price_monitor(
                    self.price_monitor, "stopped", old_config.torn_price_monitor
                )
                await self.price_monitor.stop()
                self.price_monitor = None
        elif self.price_monitor is None and new_price is not None and new_price.enabled:
            logger.info("Starting TORN price monitor from config reload...")
            self.price_monitor = TornPriceMonitor(new_price)
            await self.price_monitor.start()
            await self._notify_price_monitor(self.price_monitor, "started", new_price)

        if _dump(new_config.health_monitoring) != _dump(old_config.health_monitoring):
            logger.info("Health monitoring config changed - restart required for full effect")
        if _dump(new_config.stake_burned_listener) != _dump(old_config.stake_burned_listener):
            logger.info("StakeBurned listener config changed - restart required for full effect")

        logger.info("Configuration reload handled")

    def get_status(self) -> dict[str, Any]:
        """Status document served on ``/health``."""
        listener = self.stake_burned_listener
        return {
            "running": self._running,
            "health_monitor": self.health_monitor.get_status() if self.health_monitor else None,
            "stake_burned_listener": (
                {"is_running": listener.is_running, "last_block": listener.last_block}
                if listener
                else "not configured"
            ),
            "torn_price_monitor": (
                self.price_monitor.get_status() if self.price_monitor else "not configured"
            ),
        }


def _dump(section: Any) -> Any:
    return section.model_dump(mode="json") if section is not None else None
