"""Repository for StakeBurned event data access."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from tornado_monitor.storage.models import StakeBurnedEventModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class StakeBurnedEventDTO:
    """Data transfer object for StakeBurned events."""

    relayer: str
    amount_burned: Decimal
    block_number: int
    transaction_hash: str
    timestamp: datetime
    torn_price_eth: Decimal | None = None
    eth_value: Decimal | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: StakeBurnedEventModel) -> StakeBurnedEventDTO:
        """Create DTO from SQLAlchemy model."""
        return cls(
            relayer=model.relayer,
            amount_burned=model.amount_burned,
            block_number=model.block_number,
            transaction_hash=model.transaction_hash,
            timestamp=model.timestamp,
            torn_price_eth=model.torn_price_eth,
            eth_value=model.eth_value,
            created_at=model.created_at,
        )


class StakeBurnedEventRepository:
    """Repository for StakeBurned events.

    Events are keyed by transaction hash; saving an already stored event is
    a no-op, which makes historical syncs and backfills re-runnable.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    def _insert(self) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(StakeBurnedEventModel)
        if dialect == "sqlite":
            return sqlite_insert(StakeBurnedEventModel)
        raise ValueError(f"Unsupported database dialect: {dialect}")

    async def save(self, dto: StakeBurnedEventDTO) -> bool:
        """Insert an event unless its transaction hash is already stored.

        Args:
            dto: Event data.

        Returns:
            True if a new row was inserted, False if it already existed.
        """
        stmt = (
            self._insert()
            .values(
                relayer=dto.relayer.lower(),
                amount_burned=dto.amount_burned,
                block_number=dto.block_number,
                transaction_hash=dto.transaction_hash,
                timestamp=dto.timestamp,
                torn_price_eth=dto.torn_price_eth,
                eth_value=dto.eth_value,
                created_at=datetime.now(UTC),
            )
            .on_conflict_do_nothing(index_elements=["transaction_hash"])
        )
        result = await self.session.execute(stmt)
        await self.session.flush()

        inserted = bool(result.rowcount)
        if not inserted:
            logger.debug("StakeBurned event %s already stored", dto.transaction_hash)
        return inserted

    async def get_by_transaction_hash(self, transaction_hash: str) -> StakeBurnedEventDTO | None:
        """Get an event by transaction hash."""
        result = await self.session.execute(
            select(StakeBurnedEventModel).where(
                StakeBurnedEventModel.transaction_hash == transaction_hash
            )
        )
        model = result.scalar_one_or_none()
        return StakeBurnedEventDTO.from_model(model) if model else None

    async def get_recent(
        self, relayer: str | None = None, limit: int = 100
    ) -> list[StakeBurnedEventDTO]:
        """Get the newest events, optionally for one relayer.

        Args:
            relayer: Relayer address; case-insensitive.
            limit: Maximum number of events.

        Returns:
            Events ordered by block number, newest first.
        """
        query = select(StakeBurnedEventModel)
        if relayer is not None:
            query = query.where(StakeBurnedEventModel.relayer == relayer.lower())
        query = query.order_by(
            StakeBurnedEventModel.block_number.desc(), StakeBurnedEventModel.id.desc()
        ).limit(limit)

        result = await self.session.execute(query)
        return [StakeBurnedEventDTO.from_model(m) for m in result.scalars().all()]

    async def get_latest_block_number(self) -> int | None:
        """Highest stored block number, or None when the table is empty."""
        result = await self.session.execute(select(func.max(StakeBurnedEventModel.block_number)))
        return result.scalar_one_or_none()

    async def has_events_in_range(self, from_block: int, to_block: int) -> bool:
        """Return True if any event is stored in the inclusive block range."""
        result = await self.session.execute(
            select(func.count())
            .select_from(StakeBurnedEventModel)
            .where(StakeBurnedEventModel.block_number.between(from_block, to_block))
        )
        return result.scalar_one() > 0
