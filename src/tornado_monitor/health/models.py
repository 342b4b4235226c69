"""Data models for relayer health checks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _RelayerModel(BaseModel):
    model_config = ConfigDict(strict=True, extra="ignore", populate_by_name=True)


class RelayerHealth(_RelayerModel):
    """``health`` block of a relayer status response."""

    status: str
    error: str = ""
    errors_log: Any = Field(default=None, alias="errorsLog")


class RelayerStatus(_RelayerModel):
    """Response of a Tornado relayer ``/v1/status`` endpoint.

    Validation of the fields a health check relies on is strict: a wrong
    JSON type marks the whole response as invalid rather than being coerced.
    Informational fields are kept as published.
    """

    reward_account: str = Field(alias="rewardAccount")
    net_id: int = Field(alias="netId")
    version: str
    health: RelayerHealth
    current_queue: int = Field(alias="currentQueue")
    instances: dict[str, Any]
    tornado_service_fee: Any = Field(default=None, alias="tornadoServiceFee")
    mining_service_fee: Any = Field(default=None, alias="miningServiceFee")
    eth_prices: Any = Field(default=None, alias="ethPrices")
    error_log: Any = Field(default=None, alias="errorLog")

    @property
    def is_healthy(self) -> bool:
        """Relayers report health as the string ``"true"``."""
        return self.health.status == "true"


@dataclass
class HealthCheckResult:
    """Outcome of one health check.

    Attributes:
        timestamp: When the check started (UTC).
        is_healthy: True only for a valid, healthy, non-congested response.
        response_time_ms: Time until the response (or failure) in milliseconds.
        error: Failure reason when not healthy.
        data: Parsed status when the response was valid.
    """

    timestamp: datetime
    is_healthy: bool
    response_time_ms: int
    error: str | None = None
    data: RelayerStatus | None = None
