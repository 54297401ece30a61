"""Planning run: gather inputs, schedule, persist, and optionally actuate."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from heat_planner.config.schema import AppConfig, ElementsConfig
from heat_planner.db.models import LOWER_PERIPHERAL, UPPER_PERIPHERAL
from heat_planner.db.repository import Repository
from heat_planner.heaters.base import TIER_RELAYS, HeaterController
from heat_planner.logging.context import new_run_id, run_context
from heat_planner.planning.chain import HourChain, build_chain
from heat_planner.planning.redistribution import redistribute
from heat_planner.planning.scheduler import ScheduleTargets, schedule
from heat_planner.planning.thermal import ElementCoefficients, ReservoirState, Tier, ZoneDelta
from heat_planner.tariff.base import PriceFeedError, PriceProvider
from heat_planner.tariff.transmission import TransmissionTariff
from heat_planner.timezone_utils import in_hour_band, local_hour, resolve_timezone, start_of_hour

logger = logging.getLogger(__name__)


def max_tier_for_power(power_kw: float | None, elements: ElementsConfig) -> Tier | None:
    """Map a requested power cap to a tier; unknown values give None."""
    if power_kw is None:
        return None
    if power_kw == elements.low_rating_kw:
        return Tier.LOW
    if power_kw == elements.high_rating_kw:
        return Tier.HIGH
    logger.warning("Ignoring unsupported power cap %s kW", power_kw)
    return None


@dataclass
class RunOptions:
    """Per-request overrides of the configured planning inputs."""

    target_upper: float | None = None
    target_lower: float | None = None
    max_tier: Tier | None = None
    verbose: bool = False
    force: bool = False
    apply: bool = False


@dataclass
class RunResult:
    current_tier: Tier
    current_power_kw: float
    timestamp: datetime
    locked: bool = False
    results: list[dict[str, Any]] = field(default_factory=list)
    total_cost: float | None = None
    total_energy_kwh: float | None = None
    start_state: ReservoirState | None = None
    coefficients: dict[str, Any] | None = None

    def to_dict(self, verbose: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {
            "current_tier": self.current_tier.name,
            "current_power_kw": self.current_power_kw,
            "timestamp": self.timestamp.isoformat(),
            "locked": self.locked,
        }
        if verbose:
            data["results"] = self.results
            data["estimate"] = {
                "total_cost": self.total_cost,
                "total_energy_kwh": self.total_energy_kwh,
            }
            data["start_state"] = (
                {"upper": self.start_state.upper, "lower": self.start_state.lower}
                if self.start_state else None
            )
            data["coefficients"] = self.coefficients
        return data


class PlanRunner:
    """Runs one planning pass at a time.

    A run reads the current temperatures, learned rates, spot prices and
    schedule overrides, builds and schedules the hour chain, stores it, and
    with ``apply`` set drives the heater to the current hour's tier.
    """

    def __init__(
        self,
        config: AppConfig,
        repo: Repository,
        price_provider: PriceProvider,
        tariff: TransmissionTariff | None = None,
        heater: HeaterController | None = None,
    ) -> None:
        self._config = config
        self._repo = repo
        self._price_provider = price_provider
        self._tariff = tariff or TransmissionTariff(config.tariff)
        self._heater = heater
        self._tz = resolve_timezone(config.tariff.timezone)
        self._lock = asyncio.Lock()
        self._applied_tier: Tier | None = None

    @property
    def applied_tier(self) -> Tier | None:
        return self._applied_tier

    @property
    def price_provider(self) -> PriceProvider:
        return self._price_provider

    @property
    def heater(self) -> HeaterController | None:
        return self._heater

    async def run(self, options: RunOptions | None = None, now: datetime | None = None) -> RunResult:
        options = options or RunOptions()
        current_hour = start_of_hour(now).astimezone(timezone.utc)
        run_id = new_run_id()
        with run_context(run_id, current_hour):
            async with self._lock:
                result = await self._run_locked(options, current_hour, now, run_id)
                if options.apply:
                    await self.apply_tier(result.current_tier)
                return result

    async def apply_tier(self, tier: Tier) -> bool:
        """Drive the heater to ``tier`` if it differs from the last applied one."""
        if self._heater is None:
            return False
        if tier == self._applied_tier:
            logger.debug("Heater already at %s", tier.name)
            return False
        await self._heater.apply_tier(tier)
        self._applied_tier = tier
        await self._repo.store_relay_state(*TIER_RELAYS[tier])
        return True

    async def _run_locked(
        self,
        options: RunOptions,
        current_hour: datetime,
        now: datetime | None,
        run_id: str,
    ) -> RunResult:
        start = time.monotonic()

        if not options.force:
            stored = await self._repo.get_heating_plan(current_hour)
            row = stored.get(current_hour.isoformat(timespec="seconds"))
            if row is not None and row["locked"]:
                logger.info("Current hour already planned (%s), returning stored plan", row["tier"])
                return RunResult(
                    current_tier=Tier[row["tier"]],
                    current_power_kw=row["power_kw"],
                    timestamp=current_hour,
                    locked=True,
                    results=list(stored.values()),
                )

        seed = await self._current_state()
        coefficients = await self._coefficients(now)

        forecast = await self._price_provider.fetch_prices(now)
        slots = forecast.slots[: self._config.planning.horizon_hours]
        if not slots or slots[0].start != current_hour:
            raise PriceFeedError(f"No spot price for the current hour {current_hour.isoformat()}")

        overrides = await self._repo.get_temperature_schedule(slots[0].start, slots[-1].start)
        targets = ScheduleTargets.from_config(
            self._config.targets, options.target_upper, options.target_lower,
        )
        max_tier = options.max_tier or Tier[self._config.planning.max_tier]

        chain = build_chain(
            slots,
            self._tariff.price_at,
            seed,
            coefficients,
            overrides=overrides,
            is_low_tariff_hour=self._is_low_tariff_hour,
        )
        schedule(chain, targets, max_tier)
        redistribute(chain)

        run_options = {
            "run_id": run_id,
            "target_upper": targets.upper,
            "target_lower": targets.lower,
            "low_tariff_offset": targets.low_tariff_offset,
            "max_tier": max_tier.name,
            "force": options.force,
            "start_state": {"upper": seed.upper, "lower": seed.lower},
        }
        await self._repo.save_plan(chain, run_options, current_hour)

        current = chain[0]
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Plan computed: %d hours, current tier %s, est. cost %.2f, elapsed=%dms",
            len(chain), current.tier.name, chain.total_cost, elapsed_ms,
        )
        return self._result(chain, current_hour, coefficients)

    def _result(self, chain: HourChain, current_hour: datetime, coefficients: ElementCoefficients) -> RunResult:
        current = chain[0]
        return RunResult(
            current_tier=current.tier,
            current_power_kw=current.power_kw,
            timestamp=current_hour,
            results=chain.to_dicts(),
            total_cost=round(chain.total_cost, 3),
            total_energy_kwh=round(chain.total_energy_kwh, 3),
            start_state=chain.seed,
            coefficients=coefficients.to_dict(),
        )

    async def _current_state(self) -> ReservoirState:
        upper = await self._repo.get_latest_temperature(UPPER_PERIPHERAL)
        lower = await self._repo.get_latest_temperature(LOWER_PERIPHERAL)
        for zone, reading, fallback in (
            ("upper", upper, self._config.targets.upper),
            ("lower", lower, self._config.targets.lower),
        ):
            if reading is None:
                logger.warning("No %s temperature reading, using target %.1f", zone, fallback)
        return ReservoirState(
            upper=self._config.targets.upper if upper is None else upper,
            lower=self._config.targets.lower if lower is None else lower,
        )

    async def _coefficients(self, now: datetime | None) -> ElementCoefficients:
        elements = self._config.elements
        planning = self._config.planning

        learned = await self._repo.get_decrease_rates(planning.decrease_rate_lookback_hours, now)
        decrease = ZoneDelta(
            upper=learned.get(UPPER_PERIPHERAL, elements.decrease_per_hour.upper),
            lower=learned.get(LOWER_PERIPHERAL, elements.decrease_per_hour.lower),
        )

        increase: dict[Tier, ZoneDelta] = {}
        if planning.learn_increase_rates:
            fallback = {Tier.LOW: elements.low_increase_per_hour, Tier.HIGH: elements.high_increase_per_hour}
            by_tier = await self._repo.get_increase_rates(planning.increase_rate_lookback_hours, now)
            for tier, rates in by_tier.items():
                if rates:
                    increase[tier] = ZoneDelta(
                        upper=rates.get(UPPER_PERIPHERAL, fallback[tier].upper),
                        lower=rates.get(LOWER_PERIPHERAL, fallback[tier].lower),
                    )

        logger.debug("Rates: decrease=%s learned_increase=%s", decrease, sorted(t.name for t in increase))
        return ElementCoefficients.from_config(elements, decrease=decrease, increase=increase)

    def _is_low_tariff_hour(self, ts: datetime) -> bool:
        targets = self._config.targets
        return in_hour_band(
            local_hour(ts, self._tz),
            targets.low_tariff_start_hour,
            targets.low_tariff_end_hour,
        )
