"""TORN price lookup and monitoring."""

from tornado_monitor.price.monitor import TornPriceMonitor
from tornado_monitor.price.service import (
    PriceServiceError,
    PriceUnavailableError,
    TornPriceService,
    calculate_eth_value,
)

__all__ = [
    "PriceServiceError",
    "PriceUnavailableError",
    "TornPriceMonitor",
    "TornPriceService",
    "calculate_eth_value",
]
