"""Greedy cheapest-hour tier assignment over an hour chain.

Hours are visited in order. While an hour misses its temperature targets,
the cheapest hour at or before it that can still take more power is raised
one tier. Heat put in earlier carries forward through the chain, so a cheap
morning hour can cover an expensive evening.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from heat_planner.config.schema import TargetsConfig
from heat_planner.planning.chain import HourChain, HourRecord
from heat_planner.planning.thermal import Tier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleTargets:
    """Minimum temperatures and the price-relief rules applied to them."""

    upper: float = 55.0
    lower: float = 35.0
    low_tariff_offset: float = 5.0
    flex_price_threshold: float = 25.0
    flex_margin: float = 5.0

    @classmethod
    def from_config(
        cls,
        config: TargetsConfig,
        upper: float | None = None,
        lower: float | None = None,
    ) -> ScheduleTargets:
        return cls(
            upper=config.upper if upper is None else upper,
            lower=config.lower if lower is None else lower,
            low_tariff_offset=config.low_tariff_offset,
            flex_price_threshold=config.flex_price_threshold_cents,
            flex_margin=config.flex_margin,
        )

    def limits_for(self, hour: HourRecord) -> tuple[float, float]:
        """Effective (upper, lower) minimums for one hour."""
        if hour.scheduled_ceiling_upper is not None:
            upper = hour.scheduled_ceiling_upper
        elif hour.is_low_tariff_hour:
            upper = self.upper - self.low_tariff_offset
        else:
            upper = self.upper
        lower = hour.scheduled_ceiling_lower if hour.scheduled_ceiling_lower is not None else self.lower
        return upper, lower


def schedule(chain: HourChain, targets: ScheduleTargets, max_tier: Tier = Tier.HIGH) -> HourChain:
    """Assign tiers in place and return the chain."""
    for hour in chain:
        _satisfy_hour(chain, hour, targets, max_tier)

    logger.info(
        "Scheduled %d hours: %d tier changes, est. cost %.2f, energy %.1f kWh",
        len(chain), len(chain.changes), chain.total_cost, chain.total_energy_kwh,
    )
    logger.debug("Tier plan: %s", chain.summary())
    return chain


def _satisfy_hour(chain: HourChain, hour: HourRecord, targets: ScheduleTargets, max_tier: Tier) -> None:
    limit_upper, limit_lower = targets.limits_for(hour)

    while hour.state.upper < limit_upper or hour.state.lower < limit_lower:
        candidate = find_cheapest_available(chain, hour.index, max_tier)

        if _accept_flex(hour, candidate, limit_upper, targets):
            hour.flex_price_used = True
            logger.debug(
                "%s: flex price used, candidate %.2f above %.2f",
                hour.timestamp.isoformat(), candidate.total_price, targets.flex_price_threshold,
            )
            break

        target = next_tier(chain, candidate, max_tier)
        if target is not None:
            chain.set_tier(candidate.index, target)

        if candidate is hour and next_tier(chain, hour, max_tier) is None:
            if hour.state.upper < limit_upper or hour.state.lower < limit_lower:
                logger.debug(
                    "%s: targets %.1f/%.1f unreachable (%.1f/%.1f)",
                    hour.timestamp.isoformat(), limit_upper, limit_lower,
                    hour.state.upper, hour.state.lower,
                )
            break


def find_cheapest_available(chain: HourChain, index: int, max_tier: Tier) -> HourRecord:
    """Cheapest hour in ``chain[:index + 1]`` that can still be raised.

    Walks backward from ``index``. The hour itself is the default; an earlier
    hour replaces the current pick only when strictly cheaper, so ties go to
    the latest hour. The walk stops at an hour already at the ceiling in
    both zones, since heat added before it cannot carry past it.
    """
    ceiling = chain.coefficients.ceiling_temp
    selected = chain[index]
    for i in range(index, -1, -1):
        record = chain[i]
        if record.state.saturated(ceiling):
            break
        if record.total_price < selected.total_price and next_tier(chain, record, max_tier) is not None:
            selected = record
    return selected


def next_tier(chain: HourChain, record: HourRecord, max_tier: Tier) -> Tier | None:
    """Lowest usable tier above the record's, or None once nothing is left.

    Tiers without positive heat gain are stepped over.
    """
    tier = record.tier
    while tier < max_tier:
        tier = tier.raised()
        if chain.coefficients.is_available(tier):
            return tier
    return None


def _accept_flex(hour: HourRecord, candidate: HourRecord, limit_upper: float, targets: ScheduleTargets) -> bool:
    """Accept being slightly under target rather than pay a price spike."""
    return (
        hour.scheduled_ceiling_upper is None
        and candidate.total_price > targets.flex_price_threshold
        and not hour.is_low_tariff_hour
        and hour.state.upper >= limit_upper - targets.flex_margin
    )
