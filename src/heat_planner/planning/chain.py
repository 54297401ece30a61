"""Hour chain: the per-hour decision records of one planning run."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from heat_planner.planning.thermal import (
    ElementCoefficients,
    ReservoirState,
    Tier,
    next_state,
)
from heat_planner.tariff.base import PriceSlot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleOverride:
    """Per-hour targets from the temperature schedule; None = use defaults."""

    ceiling_upper: float | None = None
    ceiling_lower: float | None = None


@dataclass
class HourRecord:
    """One hour of the plan.

    ``tier`` is owned by the chain: change it through ``HourChain.set_tier``
    so that ``state`` and ``delivered_kw`` of this and later hours stay in
    step with it.
    """

    index: int
    timestamp: datetime
    spot_price: float
    transmission_price: float
    start_state: ReservoirState
    state: ReservoirState
    tier: Tier = Tier.OFF
    delivered_kw: float = 0.0
    power_kw: float = 0.0
    scheduled_ceiling_upper: float | None = None
    scheduled_ceiling_lower: float | None = None
    is_low_tariff_hour: bool = False
    flex_price_used: bool = False

    @property
    def total_price(self) -> float:
        return self.spot_price + self.transmission_price

    @property
    def cost(self) -> float:
        return self.total_price * self.delivered_kw

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "tier": self.tier.name,
            "power_kw": self.power_kw,
            "actual_power_kw": round(self.delivered_kw, 1),
            "price": self.spot_price,
            "transmission_price": self.transmission_price,
            "total_price": self.total_price,
            "cost": round(self.cost, 3),
            "t_upper": round(self.state.upper, 1),
            "t_lower": round(self.state.lower, 1),
            "is_low_tariff_hour": self.is_low_tariff_hour,
            "flex_price_used": self.flex_price_used,
            "scheduled_ceiling_upper": self.scheduled_ceiling_upper,
            "scheduled_ceiling_lower": self.scheduled_ceiling_lower,
        }


@dataclass(frozen=True)
class TierChange:
    index: int
    old: Tier
    new: Tier
    total_price: float


class HourChain(Sequence[HourRecord]):
    """Ordered hour records with their temperature trajectory.

    Record ``i`` starts from the state record ``i - 1`` ends in (the seed for
    the first hour). Every tier change re-derives the trajectory from the
    changed hour onwards, so states are never stale.
    """

    def __init__(
        self,
        records: list[HourRecord],
        seed: ReservoirState,
        coefficients: ElementCoefficients,
    ) -> None:
        self._records = records
        self.seed = seed
        self.coefficients = coefficients
        self.changes: list[TierChange] = []
        self.recompute()

    def __getitem__(self, index):  # type: ignore[override]
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[HourRecord]:
        return iter(self._records)

    @property
    def current(self) -> HourRecord | None:
        return self._records[0] if self._records else None

    @property
    def total_cost(self) -> float:
        return sum(r.cost for r in self._records)

    @property
    def total_energy_kwh(self) -> float:
        return sum(r.delivered_kw for r in self._records)

    def previous_state(self, index: int) -> ReservoirState:
        return self.seed if index == 0 else self._records[index - 1].state

    def set_tier(self, index: int, tier: Tier) -> None:
        record = self._records[index]
        if record.tier == tier:
            return
        self.changes.append(TierChange(index, record.tier, tier, record.total_price))
        record.tier = tier
        record.power_kw = self.coefficients.rating(tier)
        self.recompute(index)

    def recompute(self, start: int = 0) -> None:
        """Re-derive states from ``start`` to the end of the chain."""
        for i in range(start, len(self._records)):
            record = self._records[i]
            record.start_state = self.previous_state(i)
            result = next_state(record.start_state, record.tier, self.coefficients)
            record.state = result.state
            record.delivered_kw = result.delivered_kw

    def to_dicts(self) -> list[dict]:
        return [r.to_dict() for r in self._records]

    def summary(self) -> str:
        return " ".join(r.tier.name[0] for r in self._records)


def build_chain(
    prices: Iterable[PriceSlot],
    transmission_price: Callable[[datetime], float],
    seed: ReservoirState,
    coefficients: ElementCoefficients,
    overrides: Mapping[datetime, ScheduleOverride] | None = None,
    is_low_tariff_hour: Callable[[datetime], bool] | None = None,
) -> HourChain:
    """Build an all-OFF chain over the priced hours."""
    overrides = overrides or {}
    records = []
    for i, slot in enumerate(prices):
        override = overrides.get(slot.start, ScheduleOverride())
        records.append(
            HourRecord(
                index=i,
                timestamp=slot.start,
                spot_price=slot.spot_price_cents,
                transmission_price=transmission_price(slot.start),
                start_state=seed,
                state=seed,
                scheduled_ceiling_upper=override.ceiling_upper,
                scheduled_ceiling_lower=override.ceiling_lower,
                is_low_tariff_hour=is_low_tariff_hour(slot.start) if is_low_tariff_hour else False,
            )
        )
    logger.debug("Built chain of %d hours", len(records))
    return HourChain(records, seed, coefficients)
