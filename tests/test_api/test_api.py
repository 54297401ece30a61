"""Tests for the HTTP API."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from conftest import FakePriceProvider
from httpx import ASGITransport, AsyncClient

from heat_planner.api.app import create_app
from heat_planner.control.loop import ControlLoop
from heat_planner.db.models import LOWER_PERIPHERAL, UPPER_PERIPHERAL
from heat_planner.heaters.base import RelayStatus
from heat_planner.planning.runner import PlanRunner
from heat_planner.tariff.base import PriceFeedError


class FailingPriceProvider(FakePriceProvider):
    async def fetch_prices(self, now=None):
        raise PriceFeedError("price feed unavailable")


def _client(config, repo, provider=None, heater=None) -> AsyncClient:
    runner = PlanRunner(config, repo, provider or FakePriceProvider(), heater=heater)
    app = create_app(config, repo, runner)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(config, repo):
    async with _client(config, repo) as ac:
        yield ac


class TestCalculateSettings:
    @pytest.mark.asyncio
    async def test_returns_current_tier(self, client) -> None:
        resp = await client.get("/calculate-settings")
        assert resp.status_code == 200
        data = resp.json()
        assert data["current_tier"] in {"OFF", "LOW", "HIGH"}
        assert "current_power_kw" in data
        assert "results" not in data

    @pytest.mark.asyncio
    async def test_verbose(self, client) -> None:
        resp = await client.get("/calculate-settings", params={"verbose": "true"})
        data = resp.json()
        assert len(data["results"]) == 6
        assert set(data["estimate"]) == {"total_cost", "total_energy_kwh"}
        assert data["start_state"] == {"upper": 55.0, "lower": 35.0}
        assert "coefficients" in data

    @pytest.mark.asyncio
    async def test_power_cap(self, client, repo) -> None:
        await repo.store_temperature(UPPER_PERIPHERAL, 30.0)
        await repo.store_temperature(LOWER_PERIPHERAL, 25.0)
        resp = await client.get(
            "/calculate-settings", params={"power": 6, "verbose": "true", "force": "true"},
        )
        tiers = {row["tier"] for row in resp.json()["results"]}
        assert "HIGH" not in tiers

    @pytest.mark.asyncio
    async def test_second_call_uses_locked_plan(self, client) -> None:
        first = (await client.get("/calculate-settings")).json()
        second = (await client.get("/calculate-settings")).json()
        assert second["locked"] is True
        assert second["current_tier"] == first["current_tier"]

        forced = (await client.get("/calculate-settings", params={"force": "true"})).json()
        assert forced["locked"] is False

    @pytest.mark.asyncio
    async def test_failure_maps_to_500(self, config, repo) -> None:
        async with _client(config, repo, FailingPriceProvider()) as ac:
            resp = await ac.get("/calculate-settings")
        assert resp.status_code == 500
        assert resp.json()["message"] == "price feed unavailable"


class TestStatus:
    @pytest.mark.asyncio
    async def test_status_without_heater(self, client) -> None:
        resp = await client.get("/status")
        assert resp.status_code == 200
        data = resp.json()
        assert data["price_feed"] == {"healthy": True}
        assert data["heater"] is None
        assert data["applied_tier"] is None
        assert data["control_loop"] is None

    @pytest.mark.asyncio
    async def test_status_reads_relays(self, config, repo) -> None:
        heater = AsyncMock()
        heater.get_status.return_value = RelayStatus(upper_on=False, lower_on=True)
        async with _client(config, repo, heater=heater) as ac:
            data = (await ac.get("/status")).json()
        assert data["heater"] == {"available": True, "upper_on": False, "lower_on": True, "error": ""}
        heater.get_status.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_status_unreachable_heater(self, config, repo) -> None:
        heater = AsyncMock()
        heater.get_status.return_value = RelayStatus(
            upper_on=False, lower_on=False, is_available=False, error="timed out",
        )
        async with _client(config, repo, heater=heater) as ac:
            data = (await ac.get("/status")).json()
        assert data["heater"]["available"] is False
        assert data["heater"]["error"] == "timed out"

    @pytest.mark.asyncio
    async def test_status_includes_control_loop(self, config, repo) -> None:
        runner = PlanRunner(config, repo, FakePriceProvider())
        app = create_app(config, repo, runner)
        app.state.control_loop = ControlLoop(config, runner)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            data = (await ac.get("/status")).json()
        assert data["control_loop"]["tick_count"] == 0
        assert data["control_loop"]["running"] is False
        assert data["control_loop"]["planned_hour"] is None


class TestPlan:
    @pytest.mark.asyncio
    async def test_empty_plan(self, client) -> None:
        resp = await client.get("/plan")
        assert resp.status_code == 200
        assert resp.json() == {"hours": []}

    @pytest.mark.asyncio
    async def test_plan_after_calculation(self, client) -> None:
        await client.get("/calculate-settings")
        hours = (await client.get("/plan")).json()["hours"]
        assert len(hours) == 6
        assert hours[0]["locked"] is True
        assert "options" in hours[0]


class TestTelemetry:
    @pytest.mark.asyncio
    async def test_store_temperature(self, client, repo) -> None:
        resp = await client.get("/temperature", params={"peripheral": "100", "temperature": 52.5})
        assert resp.status_code == 200
        assert await repo.get_latest_temperature(UPPER_PERIPHERAL) == 52.5

    @pytest.mark.asyncio
    async def test_unknown_peripheral(self, client) -> None:
        resp = await client.get("/temperature", params={"peripheral": "999", "temperature": 50})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_temperature(self, client) -> None:
        resp = await client.get("/temperature", params={"peripheral": "100", "temperature": "warm"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_batch_temperatures_from_sensor(self, client, repo) -> None:
        resp = await client.post("/temperature", json=[
            {"peripheral": 100, "temperature": 58.25},
            {"peripheral": 101, "temperature": 33.5},
        ])
        assert resp.status_code == 202
        assert resp.json()["stored"] == 2
        assert await repo.get_latest_temperature(UPPER_PERIPHERAL) == 58.25
        assert await repo.get_latest_temperature(LOWER_PERIPHERAL) == 33.5

    @pytest.mark.asyncio
    async def test_batch_skips_missing_and_nan(self, client, repo) -> None:
        resp = await client.post(
            "/temperature",
            content='[{"peripheral": 100, "temperature": NaN}, {"peripheral": 101, "temperature": null}]',
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 202
        assert resp.json()["stored"] == 0
        assert await repo.get_latest_temperature(UPPER_PERIPHERAL) is None
        assert await repo.get_latest_temperature(LOWER_PERIPHERAL) is None

    @pytest.mark.asyncio
    async def test_batch_rejects_unknown_peripheral(self, client, repo) -> None:
        resp = await client.post("/temperature", json=[
            {"peripheral": 100, "temperature": 50.0},
            {"peripheral": 7, "temperature": 20.0},
        ])
        assert resp.status_code == 400
        assert await repo.get_latest_temperature(UPPER_PERIPHERAL) is None

    @pytest.mark.asyncio
    async def test_resistor_state(self, client, repo) -> None:
        resp = await client.post("/resistor-state", json={"up": False, "down": True})
        assert resp.status_code == 200

        async with repo.db.execute("SELECT upper_on, lower_on FROM relay_state") as cursor:
            rows = [tuple(r) for r in await cursor.fetchall()]
        assert rows == [(0, 1)]


class TestSchedule:
    @pytest.mark.asyncio
    async def test_put_schedule(self, client, repo) -> None:
        resp = await client.put("/schedule", json=[
            {"hour": "2026-02-10T18:30:00Z", "limit_upper": 60.0},
            {"hour": "2026-02-10T19:00:00Z", "limit_lower": 40.0},
        ])
        assert resp.status_code == 200
        assert resp.json()["hours"] == ["2026-02-10T18:00:00+00:00", "2026-02-10T19:00:00+00:00"]

        start = datetime(2026, 2, 10, 18, tzinfo=timezone.utc)
        end = datetime(2026, 2, 10, 20, tzinfo=timezone.utc)
        overrides = await repo.get_temperature_schedule(start, end)
        assert overrides[start].ceiling_upper == 60.0
        assert overrides[start].ceiling_lower is None
        assert overrides[datetime(2026, 2, 10, 19, tzinfo=timezone.utc)].ceiling_lower == 40.0
