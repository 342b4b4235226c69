"""CLI entry point for Tornado Monitor.

Usage:
    python -m tornado_monitor [CONFIG] [options]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import logging.config
import signal
import sys
from typing import NoReturn

from pydantic import ValidationError

from tornado_monitor import __version__
from tornado_monitor.alerts.channels.telegram import TelegramChannel
from tornado_monitor.alerts.models import GenericAlert
from tornado_monitor.alerts.services import GenericAlertService
from tornado_monitor.config import (
    ConfigError,
    ConfigFile,
    ConfigLoader,
    Settings,
    TelegramConfig,
    clear_settings_cache,
    get_settings,
)
from tornado_monitor.service import TornadoMonitorService
from tornado_monitor.shutdown import GracefulShutdown

APP_NAME = "Tornado Monitor"
APP_VERSION = __version__

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

TEST_ALERT_MESSAGES = (
    "API health checks failing: Connection timeout",
    "High queue: 15 transactions pending",
    "Error in health: Invalid response from server",
)
BURST_TEST_MESSAGE = "Test burst throttling message"
BURST_TEST_SCOPE = "TestNetwork"
BURST_TEST_COUNT = 5


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="tornado-monitor",
        description="Monitor Tornado Cash relayers, the TORN price and StakeBurned events.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tornado-monitor                         Run with the first config file found
  tornado-monitor config.json             Run with an explicit config file
  tornado-monitor --config-check          Validate config and exit
  tornado-monitor --test-alert            Send Telegram test alerts and exit
  tornado-monitor --log-level DEBUG       Enable debug logging
        """,
    )

    parser.add_argument(
        "config",
        nargs="?",
        default=None,
        help="Path to the JSON config file (default: TORNADO_CONFIG_PATH or search paths)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {APP_VERSION}",
    )

    parser.add_argument(
        "--config-check",
        action="store_true",
        help="Validate configuration and exit without starting monitors",
    )

    parser.add_argument(
        "--test-alert",
        action="store_true",
        help="Send Telegram test alerts, demonstrate burst throttling and exit",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override logging level (default: config file, then settings)",
    )

    parser.add_argument(
        "--health-port",
        type=int,
        default=None,
        help="Override status server port (default: from settings)",
    )

    return parser


def configure_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": (
                    "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s"
                ),
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if level == "DEBUG" else "standard",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        # Quieter logging for noisy libraries
        "loggers": {
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "web3": {"level": "WARNING"},
            "aiohttp": {"level": "WARNING"},
            "sqlalchemy": {"level": "WARNING"},
        },
    }
    logging.config.dictConfig(config)


def print_banner() -> None:
    """Print the application startup banner."""
    banner = f"""
╔══════════════════════════════════════════════════════════════╗
║   {APP_NAME:^56}   ║
║   {"v" + APP_VERSION:^56}   ║
╚══════════════════════════════════════════════════════════════╝
"""
    print(banner)


def validate_settings() -> Settings | None:
    """Load environment settings.

    Returns:
        Settings instance if valid, None if invalid.
    """
    try:
        clear_settings_cache()
        return get_settings()
    except ValidationError as e:
        print("Settings validation failed:", file=sys.stderr)
        for error in e.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            print(f"  {field}: {error['msg']}", file=sys.stderr)
        return None


def print_config_summary(config: ConfigFile, settings: Settings, loader: ConfigLoader) -> None:
    """Print a summary of the effective configuration."""
    summary = settings.redacted_summary()
    print("Configuration:")
    print(f"  Config File: {loader.path or '(built-in default)'}")
    print(f"  Log Level: {config.global_.logging_level}")
    print(f"  Health Port: {summary['health_port']}")
    print(f"  Database: {summary['database_url']}")

    health = config.health_monitoring
    if health is not None:
        state = "enabled" if health.enabled else "disabled"
        print(f"  Health Monitoring: {state}, {len(health.networks)} network(s)")
        for network in health.networks:
            print(
                f"    - {network.name}: {network.api_url} "
                f"(interval {network.interval:g}s, timeout {network.timeout:g}s, "
                f"max queue {network.max_queue}, "
                f"max failures {network.max_consecutive_failures})"
            )
        print(f"    Telegram: {_telegram_state(health.telegram)}")

    price = config.torn_price_monitor
    if price is not None:
        state = "enabled" if price.enabled else "disabled"
        print(f"  TORN Price Monitor: {state}, interval {price.interval:g}s")
        print(f"    Telegram: {_telegram_state(price.telegram)}")

    listener = config.stake_burned_listener
    if listener is not None:
        state = "enabled" if listener.enabled else "disabled"
        relayers = len(listener.relayer_addresses) or "all"
        print(f"  StakeBurned Listener: {state}, contract {listener.contract_address}")
        print(f"    Relayers: {relayers}, historical blocks: {listener.historical_blocks}")
        print(f"    Telegram: {_telegram_state(listener.telegram)}")
    print()


def _telegram_state(telegram: TelegramConfig | None) -> str:
    if telegram is None:
        return "not configured"
    return "configured" if telegram.enabled else "disabled"


def find_telegram_config(config: ConfigFile) -> TelegramConfig | None:
    """First enabled Telegram destination across all sections."""
    for section in (
        config.health_monitoring,
        config.torn_price_monitor,
        config.stake_burned_listener,
    ):
        if section is not None and section.telegram is not None and section.telegram.enabled:
            return section.telegram
    return None


async def run_test_alert(config: ConfigFile, delay: float = 1.0) -> int:
    """Send a connection test, sample alerts and a burst-throttling demo.

    Args:
        config: Loaded configuration.
        delay: Seconds between messages.

    Returns:
        Exit code.
    """
    telegram = find_telegram_config(config)
    if telegram is None:
        print("No section has Telegram enabled.")
        print("Add a telegram block to the config file or set the environment variables:")
        print("  export TELEGRAM_BOT_TOKEN='your_bot_token'")
        print("  export TELEGRAM_CHAT_ID='your_chat_id'")
        return EXIT_CONFIG_ERROR

    service = GenericAlertService(TelegramChannel.from_config(telegram))
    scope = (
        config.health_monitoring.networks[0].name
        if config.health_monitoring is not None
        else "Tornado"
    )
    print(f"Chat ID: {telegram.chat_id}")

    print("\n1. Testing connection...")
    if not await service.test_connection():
        print("Connection test: FAILED - check bot token and chat ID")
        return EXIT_ERROR
    print("Connection test: OK")

    print("\n2. Testing different alert types...")
    for message in TEST_ALERT_MESSAGES:
        sent = await service.send_alert(GenericAlert(scope=scope, message=message))
        print(f"  {message}: {'sent' if sent else 'not sent'}")
        await asyncio.sleep(delay)

    print("\n3. Testing burst throttling...")
    for i in range(1, BURST_TEST_COUNT + 1):
        sent = await service.send_alert(
            GenericAlert(scope=BURST_TEST_SCOPE, message=BURST_TEST_MESSAGE)
        )
        print(f"  Burst test {i}: {'sent' if sent else 'throttled'}")
        await asyncio.sleep(delay)

    print("\nAlert testing completed. Check Telegram for the test messages.")
    return EXIT_SUCCESS


async def run_service(
    config: ConfigFile,
    settings: Settings,
    loader: ConfigLoader,
    health_port: int | None = None,
    shutdown_timeout: float = 30.0,
) -> int:
    """Run the monitor service until SIGINT/SIGTERM.

    Returns:
        Exit code: 130 when stopped by SIGINT, 0 for SIGTERM.
    """
    logger = logging.getLogger(__name__)
    shutdown = GracefulShutdown(timeout=shutdown_timeout)

    try:
        async with shutdown:
            service = TornadoMonitorService(
                config, settings, loader=loader, health_port=health_port
            )
            shutdown.register_cleanup(service.stop)

            await service.start()
            logger.info("Tornado Monitor Service is running. Press Ctrl+C to stop.")

            await shutdown.wait()
            logger.info("Shutdown signal received, stopping services...")

        if shutdown.received_signal == signal.SIGINT:
            return EXIT_INTERRUPTED
        return EXIT_SUCCESS
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.exception("Service failed: %s", e)
        return EXIT_ERROR


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:]).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = validate_settings()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)

    configure_logging(args.log_level or settings.log_level)

    loader = ConfigLoader(settings)
    try:
        config = loader.load(args.config, strict=args.config_check)
    except ConfigError as e:
        print(f"Configuration invalid: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    if args.log_level is None and loader.path is not None:
        configure_logging(config.global_.logging_level)

    print_banner()

    if args.config_check:
        print("Configuration is valid!")
        print()
        print_config_summary(config, settings, loader)
        sys.exit(EXIT_SUCCESS)

    if args.test_alert:
        sys.exit(asyncio.run(run_test_alert(config)))

    print_config_summary(config, settings, loader)
    try:
        exit_code = asyncio.run(run_service(config, settings, loader, args.health_port))
    except KeyboardInterrupt:
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
