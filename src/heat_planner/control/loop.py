"""Async control loop: replan on each new hour and drive the heater."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from heat_planner.config.schema import AppConfig
from heat_planner.heaters.base import HeaterCommandError
from heat_planner.planning.runner import PlanRunner, RunOptions, RunResult
from heat_planner.planning.thermal import Tier
from heat_planner.timezone_utils import local_hour, resolve_timezone, start_of_hour

logger = logging.getLogger(__name__)


@dataclass
class LoopState:
    """Snapshot of the control loop state."""

    tick_count: int = 0
    last_tick_at: datetime | None = None
    planned_hour: datetime | None = None
    last_result: RunResult | None = None
    last_error: str = ""
    fallback_active: bool = False
    is_running: bool = False


class ControlLoop:
    """Polls the clock and runs the planner once per hour.

    Every tick (default 30 seconds):
    1. Skip if the current hour already has a plan
    2. Run the planner and apply the current tier
    3. On failure, apply the backup tier inside backup hours, OFF outside
    """

    def __init__(self, config: AppConfig, runner: PlanRunner) -> None:
        self._config = config
        self._runner = runner
        self._tz = resolve_timezone(config.tariff.timezone)
        self._state = LoopState()
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> LoopState:
        return self._state

    async def run(self) -> None:
        """Run the control loop until stopped."""
        self._state.is_running = True
        self._stop_event.clear()
        interval = self._config.planning.poll_interval_seconds

        logger.info("Control loop starting (interval: %ds)", interval)
        try:
            while not self._stop_event.is_set():
                await self._tick()
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break  # stop_event was set
                except asyncio.TimeoutError:
                    pass
        finally:
            self._state.is_running = False
            logger.info("Control loop stopped after %d ticks", self._state.tick_count)

    def stop(self) -> None:
        """Signal the loop to stop."""
        self._stop_event.set()

    async def tick_once(self, now: datetime | None = None) -> RunResult | None:
        """Execute a single tick (for testing)."""
        return await self._tick(now)

    async def _tick(self, now: datetime | None = None) -> RunResult | None:
        now = now or datetime.now(timezone.utc)
        self._state.tick_count += 1
        self._state.last_tick_at = now

        hour = start_of_hour(now)
        if self._state.planned_hour == hour:
            return None

        try:
            result = await self._runner.run(RunOptions(apply=True), now=now)
        except Exception as e:
            logger.exception("Planning failed for %s", hour.isoformat())
            self._state.last_error = str(e)
            await self._apply_fallback(now)
            return None

        self._state.planned_hour = hour
        self._state.last_result = result
        self._state.last_error = ""
        self._state.fallback_active = False
        logger.info("Tick %d: hour %s tier %s", self._state.tick_count, hour.isoformat(), result.current_tier.name)
        return result

    def fallback_tier(self, now: datetime) -> Tier:
        """Tier to run when no plan is available."""
        heater = self._config.heater
        if local_hour(now, self._tz) in heater.backup_hours:
            return Tier[heater.backup_tier]
        return Tier.OFF

    async def _apply_fallback(self, now: datetime) -> None:
        tier = self.fallback_tier(now)
        self._state.fallback_active = True
        try:
            if await self._runner.apply_tier(tier):
                logger.warning("Fallback tier %s applied", tier.name)
        except HeaterCommandError:
            logger.exception("Failed to apply fallback tier %s", tier.name)
