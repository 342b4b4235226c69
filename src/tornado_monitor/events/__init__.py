"""On-chain StakeBurned event ingestion."""

from tornado_monitor.events.blocks import BlockLookupError, get_block_by_timestamp
from tornado_monitor.events.listener import (
    EventListenerError,
    StakeBurnedListener,
    StakeBurnedLog,
    SyncResult,
    decode_stake_burned_log,
)

__all__ = [
    "BlockLookupError",
    "EventListenerError",
    "StakeBurnedListener",
    "StakeBurnedLog",
    "SyncResult",
    "decode_stake_burned_log",
    "get_block_by_timestamp",
]
