"""SQLAlchemy models for persistent storage.

This module defines the schema for StakeBurned events emitted by the
Tornado Cash relayer registry.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class StakeBurnedEventModel(Base):
    """SQLAlchemy model for StakeBurned events.

    Stores the burned TORN amount together with the TORN/ETH price at
    processing time, so historical ETH values survive price changes.
    """

    __tablename__ = "stake_burned_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    relayer: Mapped[str] = mapped_column(String(42), nullable=False)
    amount_burned: Mapped[Decimal] = mapped_column(Numeric(30, 18), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(66), unique=True, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    torn_price_eth: Mapped[Decimal | None] = mapped_column(Numeric(30, 18), nullable=True)
    eth_value: Mapped[Decimal | None] = mapped_column(Numeric(30, 18), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_stake_burned_relayer", "relayer"),
        Index("idx_stake_burned_block_number", "block_number"),
        Index("idx_stake_burned_timestamp", "timestamp"),
    )
