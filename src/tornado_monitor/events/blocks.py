"""Timestamp to block number resolution."""

from __future__ import annotations

import logging
from typing import Any

from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

logger = logging.getLogger(__name__)


class BlockLookupError(Exception):
    """Raised when a block needed for the search cannot be fetched."""


async def _get_block(w3: AsyncWeb3[Any], block_id: int | str) -> Any:
    try:
        block = await w3.eth.get_block(block_id)
    except Web3Exception as e:
        raise BlockLookupError(f"Failed to fetch block {block_id}: {e}") from e
    if block is None:
        raise BlockLookupError(f"Failed to fetch block {block_id}")
    return block


async def get_block_by_timestamp(w3: AsyncWeb3[Any], target_timestamp: int) -> int:
    """Find the first block mined at or after a Unix timestamp.

    Args:
        w3: Connected web3 instance.
        target_timestamp: Unix timestamp in seconds.

    Returns:
        Block number. The latest block when the timestamp is in the future,
        block 1 when it predates block 1.

    Raises:
        BlockLookupError: If a block fetch fails.
    """
    latest = await _get_block(w3, "latest")
    if target_timestamp >= latest["timestamp"]:
        return int(latest["number"])

    first = await _get_block(w3, 1)
    if target_timestamp <= first["timestamp"]:
        return 1

    low, high = 1, int(latest["number"])
    while low < high:
        mid = (low + high) // 2
        block = await _get_block(w3, mid)
        if block["timestamp"] < target_timestamp:
            low = mid + 1
        else:
            high = mid

    logger.debug("Timestamp %d resolved to block %d", target_timestamp, low)
    return low
