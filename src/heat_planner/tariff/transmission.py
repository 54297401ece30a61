"""Time-of-day transmission tariff."""

from __future__ import annotations

from datetime import datetime

from heat_planner.config.schema import TariffConfig
from heat_planner.timezone_utils import in_hour_band, local_hour, resolve_timezone


class TransmissionTariff:
    """Distribution charge plus electricity tax for a given hour.

    The day charge applies within the configured local day band, the night
    charge otherwise. Prices are c/kWh.
    """

    def __init__(self, config: TariffConfig) -> None:
        self._config = config
        self._tz = resolve_timezone(config.timezone)

    def is_day(self, dt: datetime) -> bool:
        hour = local_hour(dt, self._tz)
        return in_hour_band(hour, self._config.day_start_hour, self._config.day_end_hour)

    def price_at(self, dt: datetime) -> float:
        charge = self._config.day_charge_cents if self.is_day(dt) else self._config.night_charge_cents
        return charge + self._config.electricity_tax_cents

    __call__ = price_at
