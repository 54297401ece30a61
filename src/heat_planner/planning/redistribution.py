"""Consolidation of partial power between adjacent throttled hours."""

from __future__ import annotations

import logging

from heat_planner.planning.chain import HourChain, HourRecord
from heat_planner.planning.thermal import Tier

logger = logging.getLogger(__name__)

# Float slack when comparing delivered energy against a rating.
_EPSILON = 1e-9


def is_throttled(chain: HourChain, record: HourRecord) -> bool:
    """Tier is on but the ceiling cut its power below the nominal rating."""
    if record.tier == Tier.OFF:
        return False
    return record.delivered_kw < chain.coefficients.rating(record.tier) - _EPSILON


def redistribute(chain: HourChain) -> HourChain:
    """Demote the earlier hour of each throttled pair that one hour can cover.

    The greedy pass prices each step on its own, so two neighbouring hours
    can both end up capped by the ceiling, each delivering part of a tier.
    When the later hour alone could deliver both parts at no higher cost, the
    earlier hour drops one tier.
    """
    demoted = 0
    for i in range(len(chain) - 1):
        a, b = chain[i], chain[i + 1]
        if a.tier == Tier.OFF or a.tier != b.tier:
            continue
        if not (is_throttled(chain, a) and is_throttled(chain, b)):
            continue
        if not chain.coefficients.is_available(a.tier.lowered()):
            continue

        combined = a.delivered_kw + b.delivered_kw
        if combined > chain.coefficients.rating(b.tier) + _EPSILON:
            continue

        planned_cost = a.cost + b.cost
        consolidated_cost = combined * b.total_price
        if consolidated_cost <= planned_cost:
            logger.debug(
                "Consolidating %s into %s (%.2f kWh, cost %.2f -> %.2f)",
                a.timestamp.isoformat(), b.timestamp.isoformat(),
                combined, planned_cost, consolidated_cost,
            )
            chain.set_tier(a.index, a.tier.lowered())
            demoted += 1

    if demoted:
        logger.info("Redistribution demoted %d hours, est. cost %.2f", demoted, chain.total_cost)
    return chain
