"""Backfill StakeBurned events for one relayer over a date range.

Usage:
    tornado-backfill --relayer 0x... --from 2024-01-01 --to 2024-06-01
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import re
import sys
from datetime import UTC, datetime
from typing import NoReturn

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from tornado_monitor.__main__ import (
    EXIT_CONFIG_ERROR,
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    configure_logging,
    validate_settings,
)
from tornado_monitor.config import ConfigError, ConfigLoader, StakeBurnedConfig
from tornado_monitor.events.blocks import BlockLookupError, get_block_by_timestamp
from tornado_monitor.events.listener import (
    DEFAULT_CHUNK_SIZE,
    EventListenerError,
    StakeBurnedListener,
)
from tornado_monitor.price.service import TornPriceService
from tornado_monitor.storage.database import Database

logger = logging.getLogger(__name__)

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def parse_date(value: str) -> int:
    """Parse an ISO date or datetime into a Unix timestamp (naive means UTC).

    Raises:
        argparse.ArgumentTypeError: If the value is not a valid date.
    """
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date: {value}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp())


def parse_address(value: str) -> str:
    """Validate a relayer address argument."""
    if not _ADDRESS_RE.match(value):
        raise argparse.ArgumentTypeError(f"Invalid relayer address: {value}")
    return value


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the backfill CLI."""
    parser = argparse.ArgumentParser(
        prog="tornado-backfill",
        description="Store historical StakeBurned events of one relayer.",
    )
    parser.add_argument("--relayer", required=True, type=parse_address, help="Relayer address")
    parser.add_argument(
        "--from", dest="from_ts", required=True, type=parse_date, help="Start date (ISO 8601)"
    )
    parser.add_argument(
        "--to", dest="to_ts", required=True, type=parse_date, help="End date (ISO 8601)"
    )
    parser.add_argument("--config", default=None, help="Path to the JSON config file")
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help=f"Blocks per eth_getLogs request (default: {DEFAULT_CHUNK_SIZE})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level",
    )
    return parser


async def run_backfill(
    listener_config: StakeBurnedConfig,
    database_url: str,
    relayer: str,
    from_ts: int,
    to_ts: int,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """Resolve the dates to blocks and backfill.

    Returns:
        Exit code.
    """
    w3 = AsyncWeb3(AsyncHTTPProvider(listener_config.rpc_url))
    database = Database(database_url)
    try:
        logger.info("Resolving block numbers...")
        from_block = await get_block_by_timestamp(w3, from_ts)
        to_block = await get_block_by_timestamp(w3, to_ts)
        logger.info("From block: %d, to block: %d", from_block, to_block)

        await database.create_tables()
        listener = StakeBurnedListener(
            listener_config.model_copy(update={"relayer_addresses": [], "historical_blocks": 0}),
            database,
            TornPriceService(),
            w3=w3,
        )
        result = await listener.backfill(relayer, from_block, to_block, chunk_size)
    except (BlockLookupError, EventListenerError) as e:
        logger.error("Backfill failed: %s", e)
        return EXIT_ERROR
    finally:
        await database.close()

    print(
        f"Backfill complete: {result.found} events found, {result.processed} for relayer, "
        f"{result.saved} saved, {result.failed} failed"
    )
    return EXIT_SUCCESS if result.failed == 0 else EXIT_ERROR


def main(argv: list[str] | None = None) -> NoReturn:
    """Entry point for ``tornado-backfill``."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.from_ts >= args.to_ts:
        parser.error("--from date must be before --to date")

    settings = validate_settings()
    if settings is None:
        sys.exit(EXIT_CONFIG_ERROR)
    configure_logging(args.log_level)

    try:
        config = ConfigLoader(settings).load(args.config, strict=True)
    except ConfigError as e:
        print(f"Configuration invalid: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)

    listener_config = config.stake_burned_listener
    if listener_config is None:
        print(
            "No stakeBurnedListener config found. Ensure the config has rpcUrl and "
            "contractAddress.",
            file=sys.stderr,
        )
        sys.exit(EXIT_CONFIG_ERROR)

    database_url = settings.database_url or (
        listener_config.database.url if listener_config.database else None
    )
    if not database_url:
        print(
            "No database configured (stakeBurnedListener.database or DATABASE_URL).",
            file=sys.stderr,
        )
        sys.exit(EXIT_CONFIG_ERROR)

    print(f"Relayer: {args.relayer}")
    print(f"From: {datetime.fromtimestamp(args.from_ts, tz=UTC).isoformat()}")
    print(f"To:   {datetime.fromtimestamp(args.to_ts, tz=UTC).isoformat()}")

    try:
        exit_code = asyncio.run(
            run_backfill(
                listener_config,
                database_url,
                args.relayer,
                args.from_ts,
                args.to_ts,
                args.chunk_size,
            )
        )
    except KeyboardInterrupt:
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
