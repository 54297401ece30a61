"""Abstract base classes for spot price providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


class PriceFeedError(Exception):
    """Price data is missing or malformed; fatal to a planning run."""


@dataclass
class PriceSlot:
    """Spot price for one hour, c/kWh."""

    start: datetime
    spot_price_cents: float


@dataclass
class PriceForecast:
    """Ordered spot prices from the current hour onwards."""

    slots: list[PriceSlot] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    provider: str = ""


class PriceProvider(ABC):
    """Abstract base for spot price providers."""

    @abstractmethod
    async def fetch_prices(self, now: datetime | None = None) -> PriceForecast:
        """Fetch prices for the current hour and the published forecast."""
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        ...
