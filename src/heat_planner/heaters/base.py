"""Protocol for water heater controllers (Shelly, etc.)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from heat_planner.planning.thermal import Tier


class HeaterCommandError(Exception):
    """A relay command could not be delivered."""


@dataclass
class RelayStatus:
    """Output state of both element relays."""

    upper_on: bool
    lower_on: bool
    is_available: bool = True
    error: str | None = None


# Relay outputs (upper, lower) for each tier.
TIER_RELAYS: dict[Tier, tuple[bool, bool]] = {
    Tier.OFF: (False, False),
    Tier.LOW: (True, False),
    Tier.HIGH: (False, True),
}


@runtime_checkable
class HeaterController(Protocol):
    """Protocol for heater control adapters.

    Implementations: ShellyHeater.
    """

    async def apply_tier(self, tier: Tier) -> None:
        """Drive the relays to ``tier``. Raises HeaterCommandError on failure."""
        ...

    async def get_status(self) -> RelayStatus:
        """Read the current relay outputs."""
        ...
