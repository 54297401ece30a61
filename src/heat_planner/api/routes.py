"""REST endpoints: planning, telemetry ingestion and the temperature schedule."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, field_validator

from heat_planner.db.models import LOWER_PERIPHERAL, UPPER_PERIPHERAL
from heat_planner.planning.runner import RunOptions, max_tier_for_power
from heat_planner.timezone_utils import start_of_hour

router = APIRouter()
logger = logging.getLogger(__name__)


# ── Request models ───────────────────────────────────

class ResistorStateRequest(BaseModel):
    up: bool
    down: bool


class TemperatureReading(BaseModel):
    peripheral: str
    temperature: float | None = None

    @field_validator("peripheral", mode="before")
    @classmethod
    def _peripheral_id(cls, value: object) -> str:
        # Sensors report component ids as integers (100, 101).
        return str(value)


class ScheduleEntry(BaseModel):
    hour: datetime
    limit_upper: float | None = None
    limit_lower: float | None = None


# ── Planning ─────────────────────────────────────────

@router.get("/calculate-settings")
async def calculate_settings(
    request: Request,
    up: float | None = None,
    down: float | None = None,
    power: float | None = None,
    verbose: bool = False,
    force: bool = False,
):
    """Plan from the current hour and return the tier to run now."""
    config = request.app.state.config
    runner = request.app.state.runner

    options = RunOptions(
        target_upper=up,
        target_lower=down,
        max_tier=max_tier_for_power(power, config.elements),
        verbose=verbose,
        force=force,
    )
    try:
        result = await runner.run(options)
    except Exception as e:
        logger.exception("Planning run failed")
        return JSONResponse(status_code=500, content={"status": "error", "message": str(e)})
    return result.to_dict(verbose=verbose)


@router.get("/status")
async def get_status(request: Request) -> dict:
    """Health of the price feed and heater, and the control loop state."""
    runner = request.app.state.runner

    heater = None
    if runner.heater is not None:
        relays = await runner.heater.get_status()
        heater = {
            "available": relays.is_available,
            "upper_on": relays.upper_on,
            "lower_on": relays.lower_on,
            "error": relays.error or "",
        }

    loop = None
    control_loop = getattr(request.app.state, "control_loop", None)
    if control_loop is not None:
        state = control_loop.state
        loop = {
            "running": state.is_running,
            "tick_count": state.tick_count,
            "planned_hour": state.planned_hour.isoformat() if state.planned_hour else None,
            "fallback_active": state.fallback_active,
            "last_error": state.last_error,
        }

    applied = runner.applied_tier
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "price_feed": {"healthy": await runner.price_provider.is_healthy()},
        "heater": heater,
        "applied_tier": applied.name if applied is not None else None,
        "control_loop": loop,
    }


@router.get("/plan")
async def get_plan(request: Request, start: datetime | None = None) -> dict:
    """Stored plan rows from the given (default current) hour onwards."""
    repo = request.app.state.repo
    plan = await repo.get_heating_plan(start)
    return {"hours": list(plan.values())}


# ── Telemetry ────────────────────────────────────────

@router.get("/temperature")
async def store_temperature(request: Request, peripheral: str, temperature: float):
    """Store one sensor reading (sent as a plain GET)."""
    if peripheral not in (UPPER_PERIPHERAL, LOWER_PERIPHERAL):
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": f"Unknown peripheral: {peripheral}"},
        )
    repo = request.app.state.repo
    await repo.store_temperature(peripheral, temperature)
    return {"status": "ok", "peripheral": peripheral, "temperature": temperature}


@router.post("/temperature", status_code=202)
async def store_temperatures(request: Request, body: list[TemperatureReading]):
    """Store a batch of sensor readings; missing or NaN values are skipped."""
    unknown = sorted({r.peripheral for r in body} - {UPPER_PERIPHERAL, LOWER_PERIPHERAL})
    if unknown:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": f"Unknown peripheral: {', '.join(unknown)}"},
        )
    repo = request.app.state.repo
    stored = 0
    for reading in body:
        if reading.temperature is None or math.isnan(reading.temperature):
            logger.debug("Skipping empty reading from %s", reading.peripheral)
            continue
        await repo.store_temperature(reading.peripheral, reading.temperature)
        stored += 1
    return {"status": "ok", "stored": stored}


@router.post("/resistor-state")
async def store_resistor_state(request: Request, body: ResistorStateRequest) -> dict:
    repo = request.app.state.repo
    await repo.store_relay_state(upper_on=body.up, lower_on=body.down)
    return {"status": "ok", "up": body.up, "down": body.down}


# ── Temperature schedule ─────────────────────────────

@router.put("/schedule")
async def put_schedule(request: Request, body: list[ScheduleEntry]) -> dict:
    """Set per-hour minimum temperatures; null limits clear an override."""
    repo = request.app.state.repo
    for entry in body:
        await repo.set_temperature_schedule(entry.hour, entry.limit_upper, entry.limit_lower)
    logger.info("Temperature schedule updated for %d hours", len(body))
    return {
        "status": "ok",
        "hours": [start_of_hour(entry.hour).isoformat() for entry in body],
    }
