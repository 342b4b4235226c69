"""TORN/ETH price lookup from relayer status endpoints."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from decimal import Decimal, InvalidOperation

import httpx
from web3 import Web3

from tornado_monitor.config import DEFAULT_PRICE_API_URLS

logger = logging.getLogger(__name__)

USER_AGENT = "TornadoMonitor/1.0"
DEFAULT_CACHE_SECONDS = 60.0
DEFAULT_TIMEOUT = 10.0


class PriceServiceError(Exception):
    """Base exception for price lookups."""


class PriceUnavailableError(PriceServiceError):
    """Raised when no endpoint returned a price and nothing is cached."""


class TornPriceService:
    """Reads the TORN price relayers publish in ``ethPrices.torn``.

    Endpoints are tried in order; the first one with a price wins. A fetched
    price is reused for ``cache_seconds``, and when every endpoint fails the
    last known price is returned.
    """

    def __init__(
        self,
        api_urls: Sequence[str] | None = None,
        *,
        cache_seconds: float = DEFAULT_CACHE_SECONDS,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_urls = list(api_urls) if api_urls else list(DEFAULT_PRICE_API_URLS)
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._clock = clock
        self._last_price: Decimal | None = None
        self._last_fetch: float | None = None

    @property
    def last_price(self) -> Decimal | None:
        return self._last_price

    def _fresh_price(self) -> Decimal | None:
        """Cached price if it is younger than ``cache_seconds``."""
        if self._last_fetch is None or self._clock() - self._last_fetch >= self.cache_seconds:
            return None
        return self._last_price

    async def get_torn_price_eth(self) -> Decimal:
        """Return the TORN price in ETH.

        Raises:
            PriceUnavailableError: If all endpoints failed and no price is cached.
        """
        cached = self._fresh_price()
        if cached is not None:
            return cached

        for api_url in self.api_urls:
            try:
                price = await self._fetch_price(api_url)
            except PriceServiceError as e:
                logger.warning("Failed to fetch TORN price from %s: %s", api_url, e)
                continue
            if price is not None:
                self._last_price = price
                self._last_fetch = self._clock()
                return price

        if self._last_price is not None:
            logger.warning("Using cached TORN price due to API failures")
            return self._last_price

        raise PriceUnavailableError("Failed to fetch TORN price from all API endpoints")

    async def _fetch_price(self, api_url: str) -> Decimal | None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    api_url,
                    headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise PriceServiceError(str(e) or type(e).__name__) from e

        if not response.is_success:
            raise PriceServiceError(f"HTTP {response.status_code}: {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as e:
            raise PriceServiceError(f"Invalid JSON: {e}") from e

        eth_prices = data.get("ethPrices") if isinstance(data, dict) else None
        if not isinstance(eth_prices, dict) or not eth_prices.get("torn"):
            return None

        try:
            wei = int(eth_prices["torn"])
        except (TypeError, ValueError) as e:
            raise PriceServiceError(f"Invalid TORN price: {eth_prices['torn']!r}") from e
        return Decimal(Web3.from_wei(wei, "ether"))


def calculate_eth_value(torn_amount: Decimal | str, torn_price_eth: Decimal | str) -> Decimal:
    """ETH value of a TORN amount; malformed input yields zero."""
    try:
        return Decimal(torn_amount) * Decimal(torn_price_eth)
    except (InvalidOperation, TypeError, ValueError):
        logger.error("Error calculating ETH value for %r at %r", torn_amount, torn_price_eth)
        return Decimal(0)
