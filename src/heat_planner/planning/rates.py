"""Learning per-hour temperature change rates from recorded history."""

from __future__ import annotations

from bisect import bisect_right
from collections import defaultdict
from collections.abc import Sequence
from datetime import datetime
from statistics import fmean

from heat_planner.planning.thermal import Tier

# Readings further apart than this are not used as a rate sample.
MAX_SAMPLE_GAP_HOURS = 2.0


def tier_for_relays(upper_on: bool, lower_on: bool) -> Tier | None:
    """Tier implied by relay outputs; None when both run (not a plan state)."""
    if upper_on and lower_on:
        return None
    if upper_on:
        return Tier.LOW
    if lower_on:
        return Tier.HIGH
    return Tier.OFF


def rates_by_tier(
    readings: Sequence[tuple[datetime, float]],
    relay_changes: Sequence[tuple[datetime, Tier | None]],
) -> dict[Tier, float]:
    """Mean temperature change per hour for each tier seen in the history.

    ``readings`` and ``relay_changes`` must be sorted by time. A pair of
    consecutive readings is a sample for the tier active at the first
    reading, provided the relays did not change before the second one.
    """
    if not relay_changes:
        return {}

    change_times = [t for t, _ in relay_changes]
    samples: dict[Tier, list[float]] = defaultdict(list)

    for (t0, v0), (t1, v1) in zip(readings, readings[1:]):
        hours = (t1 - t0).total_seconds() / 3600
        if hours <= 0 or hours > MAX_SAMPLE_GAP_HOURS:
            continue
        pos = bisect_right(change_times, t0)
        if pos == 0:
            continue
        if pos < len(change_times) and change_times[pos] <= t1:
            continue
        tier = relay_changes[pos - 1][1]
        if tier is None:
            continue
        samples[tier].append((v1 - v0) / hours)

    return {tier: fmean(values) for tier, values in samples.items()}
