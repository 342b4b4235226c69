"""StakeBurned event listener for the Tornado Cash relayer registry.

Events are discovered by polling ``eth_getLogs`` for new blocks rather than
through filter subscriptions, which most public RPC endpoints drop.

Example:
    ```python
    listener = StakeBurnedListener(config, database, price_service, alert_service)
    await listener.sync_historical()
    await listener.start()
    ```
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception
from web3.providers import AsyncHTTPProvider

from tornado_monitor.alerts.models import GenericAlert
from tornado_monitor.alerts.services import GenericAlertService
from tornado_monitor.config import StakeBurnedConfig
from tornado_monitor.metrics import STAKE_BURNED_EVENTS
from tornado_monitor.price.service import PriceServiceError, TornPriceService, calculate_eth_value
from tornado_monitor.storage.database import Database
from tornado_monitor.storage.repos import StakeBurnedEventDTO, StakeBurnedEventRepository

logger = logging.getLogger(__name__)

# StakeBurned(address relayer, uint256 amountBurned), both non-indexed
STAKE_BURNED_TOPIC = Web3.to_hex(Web3.keccak(text="StakeBurned(address,uint256)"))

DEFAULT_CHUNK_SIZE = 5000
ALERT_SCOPE = "StakeBurned"


class EventListenerError(Exception):
    """Raised when event logs cannot be fetched or decoded."""


@dataclass(frozen=True)
class StakeBurnedLog:
    """Decoded StakeBurned log entry."""

    relayer: str
    amount_wei: int
    block_number: int
    transaction_hash: str

    @property
    def amount_burned(self) -> Decimal:
        """Burned amount in TORN."""
        return Decimal(Web3.from_wei(self.amount_wei, "ether"))


@dataclass
class SyncResult:
    """Counters for one historical sync, poll or backfill run."""

    found: int = 0
    processed: int = 0
    saved: int = 0
    failed: int = 0

    def add(self, other: SyncResult) -> None:
        self.found += other.found
        self.processed += other.processed
        self.saved += other.saved
        self.failed += other.failed


def decode_stake_burned_log(log: Any) -> StakeBurnedLog:
    """Decode a raw ``eth_getLogs`` entry.

    Raises:
        EventListenerError: If the data field is not two ABI words.
    """
    data = bytes(log["data"])
    if len(data) != 64:
        raise EventListenerError(f"Unexpected StakeBurned data length: {len(data)}")

    relayer = Web3.to_checksum_address(data[12:32])
    amount = int.from_bytes(data[32:64], "big")
    return StakeBurnedLog(
        relayer=relayer,
        amount_wei=amount,
        block_number=int(log["blockNumber"]),
        transaction_hash=Web3.to_hex(log["transactionHash"]),
    )


class StakeBurnedListener:
    """Polls the registry contract for StakeBurned events and stores them.

    Every event is stored with the TORN price at processing time and the
    derived ETH value. A failure on one event is logged and counted, it
    never aborts the surrounding sync.
    """

    def __init__(
        self,
        config: StakeBurnedConfig,
        database: Database,
        price_service: TornPriceService,
        alert_service: GenericAlertService | None = None,
        *,
        w3: AsyncWeb3[Any] | None = None,
    ) -> None:
        """Initialize the listener.

        Args:
            config: Listener section.
            database: Event storage.
            price_service: TORN price source for ETH valuation.
            alert_service: Receives poll failures; optional.
            w3: Web3 instance; built from ``config.rpc_url`` when omitted.
        """
        self.config = config
        self.database = database
        self.price_service = price_service
        self.alert_service = alert_service
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))

        self.relayer_addresses = {address.lower() for address in config.relayer_addresses}
        self.contract_address = Web3.to_checksum_address(config.contract_address)
        self.last_block: int | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def should_process_relayer(self, relayer: str) -> bool:
        """Empty filter accepts every relayer; matching is case-insensitive."""
        if not self.relayer_addresses:
            return True
        return relayer.lower() in self.relayer_addresses

    async def _current_block(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except Web3Exception as e:
            raise EventListenerError(f"Failed to fetch block number: {e}") from e

    async def fetch_events(self, from_block: int, to_block: int) -> list[StakeBurnedLog]:
        """Fetch and decode StakeBurned logs in an inclusive block range."""
        try:
            logs = await self.w3.eth.get_logs(
                {
                    "address": self.contract_address,
                    "topics": [STAKE_BURNED_TOPIC],
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            )
        except Web3Exception as e:
            raise EventListenerError(
                f"Failed to fetch logs for blocks {from_block}-{to_block}: {e}"
            ) from e

        events = []
        for log in logs:
            try:
                events.append(decode_stake_burned_log(log))
            except (EventListenerError, KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping undecodable StakeBurned log: %s", e)
        return events

    async def _block_timestamp(self, block_number: int) -> datetime:
        try:
            block = await self.w3.eth.get_block(block_number)
            return datetime.fromtimestamp(block["timestamp"], tz=UTC)
        except Web3Exception as e:
            logger.warning("Failed to fetch block %d timestamp: %s", block_number, e)
            return datetime.now(UTC)

    async def process_event(self, event: StakeBurnedLog) -> bool:
        """Value and store one event.

        Returns:
            True if the event was newly stored.
        """
        amount = event.amount_burned
        logger.info(
            "StakeBurned: relayer=%s amount=%s TORN block=%d tx=%s",
            event.relayer,
            amount,
            event.block_number,
            event.transaction_hash,
        )

        timestamp = await self._block_timestamp(event.block_number)
        torn_price: Decimal | None
        try:
            torn_price = await self.price_service.get_torn_price_eth()
        except PriceServiceError as e:
            logger.warning("Storing %s without price: %s", event.transaction_hash, e)
            torn_price = None

        dto = StakeBurnedEventDTO(
            relayer=event.relayer,
            amount_burned=amount,
            block_number=event.block_number,
            transaction_hash=event.transaction_hash,
            timestamp=timestamp,
            torn_price_eth=torn_price,
            eth_value=calculate_eth_value(amount, torn_price) if torn_price is not None else None,
        )
        async with self.database.session() as session:
            saved = await StakeBurnedEventRepository(session).save(dto)

        STAKE_BURNED_EVENTS.labels(outcome="saved" if saved else "duplicate").inc()
        return saved

    async def _process_range(
        self, from_block: int, to_block: int, relayer: str | None = None
    ) -> SyncResult:
        result = SyncResult()
        events = await self.fetch_events(from_block, to_block)
        result.found = len(events)

        for event in events:
            if relayer is not None:
                if event.relayer.lower() != relayer.lower():
                    continue
            elif not self.should_process_relayer(event.relayer):
                continue

            result.processed += 1
            try:
                if await self.process_event(event):
                    result.saved += 1
            except Exception as e:
                result.failed += 1
                STAKE_BURNED_EVENTS.labels(outcome="failed").inc()
                logger.error("Failed to process event %s: %s", event.transaction_hash, e)
        return result

    async def sync_historical(self) -> SyncResult:
        """Process the last ``historicalBlocks`` blocks."""
        try:
            current = await self._current_block()
            from_block = max(0, current - self.config.historical_blocks)
            logger.info(
                "Fetching historical StakeBurned events from blocks %d to %d",
                from_block,
                current,
            )
            result = await self._process_range(from_block, current)
        except EventListenerError as e:
            logger.error("Error fetching historical events: %s", e)
            return SyncResult()

        self.last_block = current
        logger.info(
            "Historical sync complete: %d found, %d processed, %d saved",
            result.found,
            result.processed,
            result.saved,
        )
        return result

    async def poll_once(self) -> SyncResult:
        """Process blocks mined since the last poll."""
        current = await self._current_block()
        if self.last_block is None:
            self.last_block = current
            return SyncResult()
        if current <= self.last_block:
            return SyncResult()

        result = await self._process_range(self.last_block + 1, current)
        self.last_block = current
        if result.processed:
            logger.info("Processed %d new StakeBurned events", result.processed)
        return result

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval)
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("StakeBurned poll failed: %s", e)
                if self.alert_service is not None:
                    await self.alert_service.send_alert(
                        GenericAlert(
                            scope=ALERT_SCOPE,
                            message=f"Event polling failed: {type(e).__name__}",
                        )
                    )

    async def start(self) -> None:
        """Start polling for new blocks every ``pollInterval`` seconds."""
        if self.is_running:
            logger.info("StakeBurned listener is already running")
            return

        if self.last_block is None:
            self.last_block = await self._current_block()

        relayer_filter = (
            f"(filtering: {', '.join(sorted(self.relayer_addresses))})"
            if self.relayer_addresses
            else "(all relayers)"
        )
        logger.info(
            "Listening for StakeBurned events on %s from block %d %s",
            self.contract_address,
            self.last_block,
            relayer_filter,
        )
        self._task = asyncio.create_task(self._poll_loop(), name="stake-burned")

    async def stop(self) -> None:
        """Stop polling."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped listening for StakeBurned events")

    async def backfill(
        self,
        relayer: str,
        from_block: int,
        to_block: int,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> SyncResult:
        """Store one relayer's events for a block range, in ``chunk_size`` slices.

        Raises:
            ValueError: If the range or chunk size is invalid.
            EventListenerError: If fetching a chunk fails.
        """
        if from_block > to_block:
            raise ValueError(f"from_block {from_block} is after to_block {to_block}")
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        total = SyncResult()
        for start in range(from_block, to_block + 1, chunk_size):
            end = min(start + chunk_size - 1, to_block)
            logger.info("Backfilling blocks %d-%d", start, end)
            total.add(await self._process_range(start, end, relayer=relayer))

        logger.info(
            "Backfill complete for %s: %d processed, %d saved, %d failed",
            relayer,
            total.processed,
            total.saved,
            total.failed,
        )
        return total

    async def get_recent_events(
        self, relayer: str | None = None, limit: int = 100
    ) -> list[StakeBurnedEventDTO]:
        """Newest stored events, optionally for one relayer."""
        async with self.database.session() as session:
            return await StakeBurnedEventRepository(session).get_recent(relayer, limit)
