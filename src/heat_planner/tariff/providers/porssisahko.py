"""porssisahko.net spot price provider.

The feed publishes hourly Finnish spot prices (c/kWh, VAT included) for
roughly the next 36 hours as ``{"prices": [{price, startDate, endDate}]}``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import httpx
from pydantic import BaseModel, ValidationError

from heat_planner.config.schema import PriceProviderConfig
from heat_planner.tariff.base import PriceFeedError, PriceForecast, PriceProvider, PriceSlot
from heat_planner.timezone_utils import start_of_hour

logger = logging.getLogger(__name__)


class _FeedPrice(BaseModel):
    price: float
    startDate: datetime
    endDate: datetime


class _FeedResponse(BaseModel):
    prices: list[_FeedPrice]


class PorssisahkoProvider(PriceProvider):
    """Fetches the latest published prices over HTTP."""

    def __init__(
        self,
        config: PriceProviderConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._owns_client = client is None

    async def fetch_prices(self, now: datetime | None = None) -> PriceForecast:
        """Fetch prices from the current hour onwards, sorted by start time.

        Raises PriceFeedError when the payload is malformed or holds no
        usable hours; transport errors propagate as httpx.HTTPError.
        """
        resp = await self._client.get(self._config.url)
        resp.raise_for_status()
        slots = self._parse_prices(resp.json(), start_of_hour(now))
        if not slots:
            raise PriceFeedError("Price feed returned no prices for the current hour onwards")

        logger.info(
            "Spot prices fetched: %d hours (%s to %s)",
            len(slots), slots[0].start.isoformat(), slots[-1].start.isoformat(),
        )
        return PriceForecast(
            slots=slots,
            fetched_at=datetime.now(timezone.utc),
            provider="porssisahko",
        )

    async def is_healthy(self) -> bool:
        try:
            resp = await self._client.get(self._config.url)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    @staticmethod
    def _parse_prices(data: object, this_hour: datetime) -> list[PriceSlot]:
        try:
            feed = _FeedResponse.model_validate(data)
        except ValidationError as e:
            raise PriceFeedError(f"Malformed price feed: {e.error_count()} validation errors") from e

        slots = []
        for entry in feed.prices:
            start = entry.startDate
            if start.tzinfo is None:
                start = start.replace(tzinfo=timezone.utc)
                logger.warning("Price feed returned naive datetime %s, assuming UTC", entry.startDate)
            start = start.astimezone(timezone.utc)
            if start < this_hour:
                continue
            slots.append(PriceSlot(start=start, spot_price_cents=entry.price))

        slots.sort(key=lambda s: s.start)

        # Slots must be consecutive hours; the horizon ends at the first gap.
        for i, (a, b) in enumerate(zip(slots, slots[1:]), start=1):
            if b.start - a.start > timedelta(hours=1):
                logger.warning(
                    "Price feed gap after %s (next price at %s), dropping %d later hours",
                    a.start.isoformat(), b.start.isoformat(), len(slots) - i,
                )
                return slots[:i]
        return slots
