"""Tests for the greedy tier scheduler."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from conftest import make_slots

from heat_planner.config.schema import TargetsConfig
from heat_planner.planning.chain import ScheduleOverride, build_chain
from heat_planner.planning.scheduler import ScheduleTargets, find_cheapest_available, next_tier, schedule
from heat_planner.planning.thermal import ElementCoefficients, ReservoirState, Tier, ZoneDelta

START = datetime(2026, 2, 10, 10, 0, tzinfo=timezone.utc)
NIGHT = datetime(2026, 2, 10, 1, 0, tzinfo=timezone.utc)


def _chain(coefficients, prices, seed, start=START, transmission=0.0, overrides=None, low_tariff=None):
    return build_chain(
        make_slots(start, prices),
        lambda ts: transmission,
        seed,
        coefficients,
        overrides=overrides,
        is_low_tariff_hour=low_tariff,
    )


def _night(ts: datetime) -> bool:
    return ts.hour < 6


class TestScheduleTargets:
    def test_from_config(self) -> None:
        targets = ScheduleTargets.from_config(TargetsConfig(), upper=60.0)
        assert targets.upper == 60.0
        assert targets.lower == 35.0
        assert targets.flex_price_threshold == 25.0

    def test_low_tariff_limit(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0], ReservoirState(50.0, 40.0), start=NIGHT, low_tariff=_night)
        assert ScheduleTargets().limits_for(chain[0]) == (50.0, 35.0)

    def test_override_replaces_both_limits(self, coefficients: ElementCoefficients) -> None:
        overrides = {NIGHT: ScheduleOverride(ceiling_upper=62.0, ceiling_lower=45.0)}
        chain = _chain(
            coefficients, [5.0], ReservoirState(50.0, 40.0),
            start=NIGHT, overrides=overrides, low_tariff=_night,
        )
        assert ScheduleTargets().limits_for(chain[0]) == (62.0, 45.0)


class TestScheduleScenarios:
    def test_cold_start_heats_every_hour(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0, 10.0, 15.0], ReservoirState(40.0, 30.0), transmission=5.0)
        schedule(chain, ScheduleTargets())

        assert len(chain) == 3
        assert chain[0].tier > Tier.OFF
        assert [r.tier for r in chain] == [Tier.HIGH, Tier.HIGH, Tier.HIGH]
        assert chain.changes[0].index == 0
        prices = [c.total_price for c in chain.changes]
        assert prices == sorted(prices)

    def test_cheapest_earlier_hour_is_raised(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [20.0, 5.0, 10.0], ReservoirState(55.0, 36.0))
        schedule(chain, ScheduleTargets())

        # Hour 2's deficit is covered by hour 1, the cheapest hour before it.
        assert [r.tier for r in chain] == [Tier.LOW, Tier.LOW, Tier.OFF]
        assert chain[2].state.upper >= 55.0
        assert chain[2].state.lower >= 35.0

    def test_max_tier_low_never_uses_high(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0, 10.0, 15.0], ReservoirState(40.0, 30.0))
        schedule(chain, ScheduleTargets(), max_tier=Tier.LOW)

        assert all(r.tier <= Tier.LOW for r in chain)
        assert [r.tier for r in chain] == [Tier.LOW, Tier.LOW, Tier.LOW]

    def test_low_tariff_hour_uses_relaxed_target(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0], ReservoirState(49.5, 40.0), start=NIGHT, low_tariff=_night)
        schedule(chain, ScheduleTargets())

        assert chain[0].tier == Tier.LOW
        assert chain[0].state.upper == pytest.approx(50.6)

    def test_normal_hour_needs_full_target(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0], ReservoirState(49.5, 40.0))
        schedule(chain, ScheduleTargets())
        assert chain[0].tier == Tier.HIGH

    def test_override_beats_low_tariff_offset(self, coefficients: ElementCoefficients) -> None:
        overrides = {NIGHT: ScheduleOverride(ceiling_upper=55.0)}
        chain = _chain(
            coefficients, [5.0], ReservoirState(49.5, 40.0),
            start=NIGHT, overrides=overrides, low_tariff=_night,
        )
        schedule(chain, ScheduleTargets())
        assert chain[0].tier == Tier.HIGH

    def test_satisfied_hours_stay_off(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0, 5.0], ReservoirState(65.0, 60.0))
        schedule(chain, ScheduleTargets())
        assert [r.tier for r in chain] == [Tier.OFF, Tier.OFF]
        assert chain.changes == []


class TestFlexPrice:
    def test_expensive_hour_accepts_small_shortfall(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [30.0], ReservoirState(51.0, 35.0), transmission=5.0)
        schedule(chain, ScheduleTargets())

        assert chain[0].tier == Tier.OFF
        assert chain[0].flex_price_used

    def test_large_shortfall_still_heats(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [30.0], ReservoirState(45.0, 35.0), transmission=5.0)
        schedule(chain, ScheduleTargets())

        assert chain[0].tier > Tier.OFF
        assert not chain[0].flex_price_used

    def test_override_disables_flex(self, coefficients: ElementCoefficients) -> None:
        overrides = {START: ScheduleOverride(ceiling_upper=55.0)}
        chain = _chain(
            coefficients, [30.0], ReservoirState(52.0, 35.0),
            transmission=5.0, overrides=overrides,
        )
        schedule(chain, ScheduleTargets())

        assert chain[0].tier == Tier.HIGH
        assert not chain[0].flex_price_used
        assert chain[0].state.upper >= 55.0

    def test_low_tariff_hour_never_flexes(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(
            coefficients, [30.0], ReservoirState(46.0, 35.0),
            start=NIGHT, transmission=5.0, low_tariff=_night,
        )
        schedule(chain, ScheduleTargets())

        assert chain[0].tier > Tier.OFF
        assert not chain[0].flex_price_used


class TestPlanProperties:
    def test_ceiling_is_never_exceeded(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [1.0] * 8, ReservoirState(66.0, 64.0))
        schedule(chain, ScheduleTargets(upper=80.0, lower=80.0))

        assert any(r.tier == Tier.HIGH for r in chain)
        for r in chain:
            assert r.state.upper <= 70.0 + 1e-9
            assert r.state.lower <= 70.0 + 1e-9

    def test_decay_without_heating(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0] * 4, ReservoirState(60.0, 50.0))
        schedule(chain, ScheduleTargets(upper=0.0, lower=0.0))

        for i, r in enumerate(chain, start=1):
            assert r.tier == Tier.OFF
            assert r.state.upper == pytest.approx(60.0 - 0.9 * i)
            assert r.state.lower == pytest.approx(50.0 - 1.2 * i)

    def test_recompute_is_idempotent(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [9.0, 3.0, 7.0, 2.0, 11.0], ReservoirState(45.0, 33.0))
        schedule(chain, ScheduleTargets())
        before = [(r.state, r.delivered_kw) for r in chain]

        chain.recompute()
        assert [(r.state, r.delivered_kw) for r in chain] == before

    def test_states_chain_forward(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [9.0, 3.0, 7.0], ReservoirState(45.0, 33.0))
        schedule(chain, ScheduleTargets())

        assert chain[0].start_state == chain.seed
        for prev, cur in zip(chain, chain[1:]):
            assert cur.start_state == prev.state


class TestFindCheapestAvailable:
    def test_ties_go_to_the_latest_hour(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [5.0, 5.0, 5.0], ReservoirState(40.0, 30.0))
        assert find_cheapest_available(chain, 2, Tier.HIGH) is chain[2]

    def test_picks_strictly_cheaper_earlier_hour(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [7.0, 3.0, 5.0], ReservoirState(40.0, 30.0))
        assert find_cheapest_available(chain, 2, Tier.HIGH) is chain[1]

    def test_skips_hours_at_max_tier(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [7.0, 3.0, 5.0], ReservoirState(40.0, 30.0))
        chain.set_tier(1, Tier.LOW)
        assert find_cheapest_available(chain, 2, Tier.LOW) is chain[2]

    def test_stops_at_saturated_hour(self, coefficients: ElementCoefficients) -> None:
        chain = _chain(coefficients, [1.0, 9.0, 9.0], ReservoirState(71.5, 71.5))
        assert chain[0].state.saturated(70.0)
        assert not chain[1].state.saturated(70.0)
        assert find_cheapest_available(chain, 2, Tier.HIGH) is chain[2]


def _coefficients(low: ZoneDelta, high: ZoneDelta) -> ElementCoefficients:
    return ElementCoefficients(
        decrease_per_hour=ZoneDelta(upper=0.9, lower=1.2),
        increase_per_hour={Tier.LOW: low, Tier.HIGH: high},
        ceiling_temp=70.0,
    )


class TestUnavailableTiers:
    LOW_DEAD = ZoneDelta(upper=-1.2, lower=0.9)
    HIGH_DEAD = ZoneDelta(upper=3.4, lower=-1.5)
    LOW_OK = ZoneDelta(upper=1.1, lower=0.9)
    HIGH_OK = ZoneDelta(upper=3.4, lower=5.5)

    def test_only_unavailable_tier_leaves_hours_off(self) -> None:
        coefficients = _coefficients(self.LOW_DEAD, self.HIGH_OK)
        chain = _chain(coefficients, [5.0, 6.0, 7.0], ReservoirState(45.0, 30.0))
        schedule(chain, ScheduleTargets(), max_tier=Tier.LOW)

        assert [r.tier for r in chain] == [Tier.OFF, Tier.OFF, Tier.OFF]
        assert all(r.power_kw == 0.0 for r in chain)

    def test_unavailable_low_steps_straight_to_high(self) -> None:
        coefficients = _coefficients(self.LOW_DEAD, self.HIGH_OK)
        chain = _chain(coefficients, [5.0, 6.0, 7.0], ReservoirState(45.0, 30.0))
        schedule(chain, ScheduleTargets())

        assert Tier.LOW not in [r.tier for r in chain]
        assert chain[0].tier == Tier.HIGH
        assert chain[0].delivered_kw > 0.0

    def test_unavailable_high_is_never_scheduled(self) -> None:
        coefficients = _coefficients(self.LOW_OK, self.HIGH_DEAD)
        chain = _chain(coefficients, [5.0, 6.0, 7.0], ReservoirState(45.0, 30.0))
        schedule(chain, ScheduleTargets())

        assert Tier.HIGH not in [r.tier for r in chain]
        assert chain[0].tier == Tier.LOW
        for record in chain:
            if record.tier != Tier.OFF:
                assert record.delivered_kw > 0.0

    def test_next_tier_skips_unavailable(self) -> None:
        coefficients = _coefficients(self.LOW_DEAD, self.HIGH_OK)
        chain = _chain(coefficients, [5.0], ReservoirState(45.0, 30.0))
        assert next_tier(chain, chain[0], Tier.HIGH) == Tier.HIGH
        assert next_tier(chain, chain[0], Tier.LOW) is None
