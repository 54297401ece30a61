"""Shelly local HTTP API adapter for the two element relays."""

from __future__ import annotations

import logging

import httpx

from heat_planner.config.schema import HeaterConfig
from heat_planner.heaters.base import TIER_RELAYS, HeaterCommandError, RelayStatus
from heat_planner.planning.thermal import Tier

logger = logging.getLogger(__name__)

# Shelly Gen2 RPC endpoints
_SWITCH_SET = "/rpc/Switch.Set"
_SWITCH_GET_STATUS = "/rpc/Switch.GetStatus"
_GEN1_RELAY = "/relay/{relay_id}"


class ShellyHeater:
    """Drives the upper and lower element relays of a two-channel Shelly.

    Uses Gen2 RPC with a Gen1 fallback. Relays are switched off before the
    new one is switched on, so both elements never run together.
    """

    def __init__(self, config: HeaterConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=3.0, read=5.0, write=5.0, pool=2.0),
            limits=httpx.Limits(max_connections=2, max_keepalive_connections=0),
        )
        self._owns_client = client is None
        self._base_url = f"http://{config.host}"

    async def apply_tier(self, tier: Tier) -> None:
        upper_on, lower_on = TIER_RELAYS[tier]
        # Off first, then on.
        if not upper_on:
            await self._set_relay(self._config.upper_relay_id, False)
        if not lower_on:
            await self._set_relay(self._config.lower_relay_id, False)
        if upper_on:
            await self._set_relay(self._config.upper_relay_id, True)
        if lower_on:
            await self._set_relay(self._config.lower_relay_id, True)
        logger.info("Heater set to %s (upper=%s lower=%s)", tier.name, upper_on, lower_on)

    async def _set_relay(self, relay_id: int, on: bool) -> None:
        """Switch one relay (Gen2 RPC with Gen1 fallback)."""
        try:
            resp = await self._client.post(
                f"{self._base_url}{_SWITCH_SET}",
                json={"id": relay_id, "on": on},
            )
            resp.raise_for_status()
            return
        except httpx.HTTPError as rpc_error:
            logger.warning(
                "Gen2 Switch.Set failed for relay %d, trying Gen1: %s", relay_id, rpc_error,
            )
        try:
            resp = await self._client.get(
                f"{self._base_url}{_GEN1_RELAY.format(relay_id=relay_id)}",
                params={"turn": "on" if on else "off"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise HeaterCommandError(
                f"Failed to turn {'on' if on else 'off'} relay {relay_id} at {self._config.host}: {e}"
            ) from e

    async def get_status(self) -> RelayStatus:
        try:
            upper_on = await self._relay_output(self._config.upper_relay_id)
            lower_on = await self._relay_output(self._config.lower_relay_id)
        except httpx.HTTPError as e:
            logger.warning("Failed to read Shelly relay status: %s", e)
            return RelayStatus(upper_on=False, lower_on=False, is_available=False, error=str(e))
        return RelayStatus(upper_on=upper_on, lower_on=lower_on)

    async def _relay_output(self, relay_id: int) -> bool:
        try:
            resp = await self._client.get(
                f"{self._base_url}{_SWITCH_GET_STATUS}",
                params={"id": relay_id},
            )
            resp.raise_for_status()
            return bool(resp.json().get("output", False))
        except httpx.HTTPError:
            resp = await self._client.get(
                f"{self._base_url}{_GEN1_RELAY.format(relay_id=relay_id)}",
            )
            resp.raise_for_status()
            return bool(resp.json().get("ison", False))

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()
