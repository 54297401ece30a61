"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ZoneRates(BaseModel):
    """Temperature change per hour for the upper and lower zone."""

    upper: float
    lower: float


class ElementsConfig(BaseModel):
    """Physical properties of the two heating elements.

    The decrease/increase rates are fallbacks, used when no rates can be
    learned from the stored temperature history.
    """
    ceiling_temp: float = 70.0
    low_rating_kw: float = Field(6.0, gt=0.0)
    high_rating_kw: float = Field(12.0, gt=0.0)
    decrease_per_hour: ZoneRates = ZoneRates(upper=1.2, lower=1.2)
    low_increase_per_hour: ZoneRates = ZoneRates(upper=3.8, lower=0.0)
    high_increase_per_hour: ZoneRates = ZoneRates(upper=3.0, lower=5.6)


class TargetsConfig(BaseModel):
    upper: float = 55.0
    lower: float = 35.0
    low_tariff_offset: float = 5.0
    low_tariff_start_hour: int = Field(0, ge=0, le=23)
    low_tariff_end_hour: int = Field(6, ge=0, le=24)  # exclusive
    flex_price_threshold_cents: float = 25.0
    flex_margin: float = 5.0


class TariffConfig(BaseModel):
    """Transmission tariff in c/kWh by local time-of-day band."""

    day_charge_cents: float = 2.62
    night_charge_cents: float = 1.37
    electricity_tax_cents: float = 2.83
    day_start_hour: int = Field(7, ge=0, le=23)
    day_end_hour: int = Field(22, ge=0, le=24)  # exclusive
    timezone: str = "Europe/Helsinki"


class PriceProviderConfig(BaseModel):
    type: str = "porssisahko"
    url: str = "https://api.porssisahko.net/v1/latest-prices.json"
    timeout_seconds: float = 30.0


class ProvidersConfig(BaseModel):
    prices: PriceProviderConfig = PriceProviderConfig()


class HeaterConfig(BaseModel):
    adapter: str = "shelly"
    host: str = "192.168.1.60"
    upper_relay_id: int = 0
    lower_relay_id: int = 1
    backup_hours: list[int] = Field(default_factory=lambda: [2, 3, 4, 5])
    backup_tier: Literal["OFF", "LOW", "HIGH"] = "HIGH"


class PlanningConfig(BaseModel):
    max_tier: Literal["LOW", "HIGH"] = "HIGH"
    horizon_hours: int = Field(48, gt=0)
    poll_interval_seconds: int = 30
    learn_increase_rates: bool = False
    increase_rate_lookback_hours: int = 24
    decrease_rate_lookback_hours: int = 72


class ApiConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class DBConfig(BaseModel):
    path: str = "heat_planner.db"


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    elements: ElementsConfig = ElementsConfig()
    targets: TargetsConfig = TargetsConfig()
    tariff: TariffConfig = TariffConfig()
    providers: ProvidersConfig = ProvidersConfig()
    heater: HeaterConfig = HeaterConfig()
    planning: PlanningConfig = PlanningConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()
    db: DBConfig = DBConfig()
