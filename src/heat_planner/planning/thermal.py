"""Two-zone reservoir model: heat loss and element gain per hour."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum

from heat_planner.config.schema import ElementsConfig

logger = logging.getLogger(__name__)


class Tier(IntEnum):
    """Element power level. LOW drives the upper element, HIGH the lower one."""

    OFF = 0
    LOW = 1
    HIGH = 2

    def raised(self) -> Tier:
        return Tier(min(self + 1, Tier.HIGH))

    def lowered(self) -> Tier:
        return Tier(max(self - 1, Tier.OFF))


@dataclass(frozen=True)
class ReservoirState:
    """Temperatures of the upper and lower zone."""

    upper: float
    lower: float

    def saturated(self, ceiling: float) -> bool:
        return self.upper >= ceiling and self.lower >= ceiling


@dataclass(frozen=True)
class ZoneDelta:
    upper: float
    lower: float


@dataclass(frozen=True)
class ElementCoefficients:
    """Physical coefficients for one planning run.

    ``increase_per_hour`` is the net hourly gain while a tier runs at its
    nominal rating, so the gross gain per kWh delivered is
    ``(increase + decrease) / rating``.
    """

    decrease_per_hour: ZoneDelta
    increase_per_hour: dict[Tier, ZoneDelta]
    ceiling_temp: float
    ratings: dict[Tier, float] = field(
        default_factory=lambda: {Tier.LOW: 6.0, Tier.HIGH: 12.0}
    )

    def __post_init__(self) -> None:
        factors = {}
        for tier in (Tier.LOW, Tier.HIGH):
            inc = self.increase_per_hour[tier]
            rating = self.ratings[tier]
            factors[tier] = ZoneDelta(
                upper=(inc.upper + self.decrease_per_hour.upper) / rating,
                lower=(inc.lower + self.decrease_per_hour.lower) / rating,
            )
            if not self._primary(factors[tier], tier) > 0:
                logger.warning("Tier %s has no positive heat gain; treating it as unavailable", tier.name)
        object.__setattr__(self, "_factors", factors)

    @classmethod
    def from_config(
        cls,
        config: ElementsConfig,
        decrease: ZoneDelta | None = None,
        increase: dict[Tier, ZoneDelta] | None = None,
    ) -> ElementCoefficients:
        """Build coefficients from config, preferring measured rates when given."""
        fallback_increase = {
            Tier.LOW: ZoneDelta(config.low_increase_per_hour.upper, config.low_increase_per_hour.lower),
            Tier.HIGH: ZoneDelta(config.high_increase_per_hour.upper, config.high_increase_per_hour.lower),
        }
        return cls(
            decrease_per_hour=decrease or ZoneDelta(
                config.decrease_per_hour.upper, config.decrease_per_hour.lower,
            ),
            increase_per_hour={**fallback_increase, **(increase or {})},
            ceiling_temp=config.ceiling_temp,
            ratings={Tier.LOW: config.low_rating_kw, Tier.HIGH: config.high_rating_kw},
        )

    def rating(self, tier: Tier) -> float:
        return 0.0 if tier == Tier.OFF else self.ratings[tier]

    def increase_factor(self, tier: Tier) -> ZoneDelta:
        return self._factors[tier]  # type: ignore[attr-defined]

    def is_available(self, tier: Tier) -> bool:
        if tier == Tier.OFF:
            return True
        return self._primary(self.increase_factor(tier), tier) > 0

    def to_dict(self) -> dict:
        return {
            "decrease_per_hour": {"upper": self.decrease_per_hour.upper, "lower": self.decrease_per_hour.lower},
            "increase_per_hour": {
                tier.name: {"upper": inc.upper, "lower": inc.lower}
                for tier, inc in self.increase_per_hour.items()
            },
            "ratings_kw": {tier.name: rating for tier, rating in self.ratings.items()},
            "ceiling_temp": self.ceiling_temp,
        }

    @staticmethod
    def _primary(delta: ZoneDelta, tier: Tier) -> float:
        return delta.upper if tier == Tier.LOW else delta.lower


@dataclass(frozen=True)
class ThermalResult:
    state: ReservoirState
    delivered_kw: float


def delivered_power(previous: ReservoirState, tier: Tier, coeff: ElementCoefficients) -> float:
    """Energy the element can put in during one hour without overshooting.

    The tier's own zone (upper for LOW, lower for HIGH) sets the cap; the
    other zone is checked too since both receive heat.
    """
    if tier == Tier.OFF or not coeff.is_available(tier):
        return 0.0

    factor = coeff.increase_factor(tier)
    headroom_upper = coeff.ceiling_temp - previous.upper + coeff.decrease_per_hour.upper
    headroom_lower = coeff.ceiling_temp - previous.lower + coeff.decrease_per_hour.lower

    if tier == Tier.LOW:
        cap, other_headroom, other_factor = headroom_upper / factor.upper, headroom_lower, factor.lower
    else:
        cap, other_headroom, other_factor = headroom_lower / factor.lower, headroom_upper, factor.upper

    delivered = min(coeff.rating(tier), cap)
    if other_factor > 0:
        delivered = min(delivered, other_headroom / other_factor)
    return max(0.0, delivered)


def next_state(previous: ReservoirState, tier: Tier, coeff: ElementCoefficients) -> ThermalResult:
    """State at the end of an hour run at ``tier``."""
    delivered = delivered_power(previous, tier, coeff)
    gain = coeff.increase_factor(tier) if delivered > 0 else ZoneDelta(0.0, 0.0)

    lower = previous.lower - coeff.decrease_per_hour.lower + gain.lower * delivered
    upper = previous.upper - coeff.decrease_per_hour.upper + gain.upper * delivered
    # Upper zone shares the return path, it never ends colder than the lower one.
    upper = max(upper, lower)
    return ThermalResult(state=ReservoirState(upper=upper, lower=lower), delivered_kw=delivered)
