"""Shared test fixtures for Heat Planner."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from heat_planner.config.schema import AppConfig
from heat_planner.db.engine import init_db
from heat_planner.db.repository import Repository
from heat_planner.planning.thermal import ElementCoefficients, Tier, ZoneDelta
from heat_planner.tariff.base import PriceForecast, PriceProvider, PriceSlot
from heat_planner.timezone_utils import start_of_hour


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh database for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def repo(db: aiosqlite.Connection) -> Repository:
    """Provide a repository with a fresh database."""
    return Repository(db)


@pytest.fixture
def coefficients() -> ElementCoefficients:
    """Coefficients with round factors: LOW 1/3, 0.35 and HIGH 0.358, 0.558 per kWh."""
    return ElementCoefficients(
        decrease_per_hour=ZoneDelta(upper=0.9, lower=1.2),
        increase_per_hour={
            Tier.LOW: ZoneDelta(upper=1.1, lower=0.9),
            Tier.HIGH: ZoneDelta(upper=3.4, lower=5.5),
        },
        ceiling_temp=70.0,
    )


def make_slots(start: datetime, prices: list[float]) -> list[PriceSlot]:
    return [
        PriceSlot(start=start + timedelta(hours=i), spot_price_cents=price)
        for i, price in enumerate(prices)
    ]


class FakePriceProvider(PriceProvider):
    """Test double serving fixed prices from the current hour onwards."""

    def __init__(self, prices: list[float] | None = None) -> None:
        self.prices = prices if prices is not None else [8.0, 3.0, 2.0, 12.0, 15.0, 4.0]
        self.calls = 0

    async def fetch_prices(self, now: datetime | None = None) -> PriceForecast:
        self.calls += 1
        return PriceForecast(
            slots=make_slots(start_of_hour(now), self.prices),
            fetched_at=datetime.now(timezone.utc),
            provider="fake",
        )

    async def is_healthy(self) -> bool:
        return True
