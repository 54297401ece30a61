"""Data access layer for all database operations."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any

import aiosqlite

from heat_planner.db.models import LOWER_PERIPHERAL, UPPER_PERIPHERAL
from heat_planner.planning.chain import HourRecord, ScheduleOverride
from heat_planner.planning.rates import rates_by_tier, tier_for_relays
from heat_planner.planning.thermal import Tier
from heat_planner.timezone_utils import start_of_hour

logger = logging.getLogger(__name__)


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def _now() -> str:
    return _iso(datetime.now(timezone.utc))


class Repository:
    """Centralised data access for all tables."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    # ── Temperatures ────────────────────────────────────────

    async def store_temperature(
        self,
        peripheral: str,
        temperature: float,
        recorded_at: datetime | None = None,
    ) -> int:
        recorded = _iso(recorded_at) if recorded_at else _now()
        async with self.db.execute(
            "INSERT INTO temperature (peripheral, temperature, recorded_at) VALUES (?, ?, ?)",
            (peripheral, temperature, recorded),
        ) as cursor:
            row_id = cursor.lastrowid
        await self.db.commit()
        return row_id  # type: ignore[return-value]

    async def get_latest_temperature(self, peripheral: str) -> float | None:
        async with self.db.execute(
            """SELECT temperature FROM temperature WHERE peripheral = ?
               ORDER BY recorded_at DESC, id DESC LIMIT 1""",
            (peripheral,),
        ) as cursor:
            row = await cursor.fetchone()
            return row["temperature"] if row else None

    async def get_temperatures_since(
        self, peripheral: str, since: datetime
    ) -> list[tuple[datetime, float]]:
        async with self.db.execute(
            """SELECT recorded_at, temperature FROM temperature
               WHERE peripheral = ? AND recorded_at >= ?
               ORDER BY recorded_at, id""",
            (peripheral, _iso(since)),
        ) as cursor:
            rows = await cursor.fetchall()
        return [(datetime.fromisoformat(r["recorded_at"]), r["temperature"]) for r in rows]

    # ── Relay State ─────────────────────────────────────────

    async def store_relay_state(
        self,
        upper_on: bool,
        lower_on: bool,
        recorded_at: datetime | None = None,
    ) -> int:
        """Record relay outputs together with the latest zone temperatures."""
        upper_temp = await self.get_latest_temperature(UPPER_PERIPHERAL)
        lower_temp = await self.get_latest_temperature(LOWER_PERIPHERAL)
        async with self.db.execute(
            """INSERT INTO relay_state
               (upper_on, lower_on, upper_temp, lower_temp, recorded_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                1 if upper_on else 0,
                1 if lower_on else 0,
                upper_temp if upper_temp is not None else 0.0,
                lower_temp if lower_temp is not None else 0.0,
                _iso(recorded_at) if recorded_at else _now(),
            ),
        ) as cursor:
            row_id = cursor.lastrowid
        await self.db.commit()
        return row_id  # type: ignore[return-value]

    async def get_relay_changes_since(self, since: datetime) -> list[tuple[datetime, Tier | None]]:
        """Relay tier changes from the last one before ``since`` onwards."""
        async with self.db.execute(
            """SELECT upper_on, lower_on, recorded_at FROM relay_state
               WHERE recorded_at >= COALESCE(
                   (SELECT MAX(recorded_at) FROM relay_state WHERE recorded_at < ?), ?)
               ORDER BY recorded_at, id""",
            (_iso(since), _iso(since)),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            (datetime.fromisoformat(r["recorded_at"]), tier_for_relays(bool(r["upper_on"]), bool(r["lower_on"])))
            for r in rows
        ]

    # ── Learned Rates ───────────────────────────────────────

    async def get_rates_by_tier(
        self, lookback_hours: int, now: datetime | None = None
    ) -> dict[str, dict[Tier, float]]:
        """Mean change per hour by tier, keyed by peripheral."""
        since = (now or datetime.now(timezone.utc)) - timedelta(hours=lookback_hours)
        changes = await self.get_relay_changes_since(since)
        result = {}
        for peripheral in (UPPER_PERIPHERAL, LOWER_PERIPHERAL):
            readings = await self.get_temperatures_since(peripheral, since)
            result[peripheral] = rates_by_tier(readings, changes)
        return result

    async def get_decrease_rates(
        self, lookback_hours: int = 72, now: datetime | None = None
    ) -> dict[str, float]:
        """Heat loss per hour with both elements off; never negative."""
        rates = await self.get_rates_by_tier(lookback_hours, now)
        return {
            peripheral: max(0.0, -by_tier[Tier.OFF])
            for peripheral, by_tier in rates.items()
            if Tier.OFF in by_tier
        }

    async def get_increase_rates(
        self, lookback_hours: int = 24, now: datetime | None = None
    ) -> dict[Tier, dict[str, float]]:
        """Net temperature gain per hour while LOW or HIGH runs."""
        rates = await self.get_rates_by_tier(lookback_hours, now)
        result: dict[Tier, dict[str, float]] = {Tier.LOW: {}, Tier.HIGH: {}}
        for peripheral, by_tier in rates.items():
            for tier in (Tier.LOW, Tier.HIGH):
                if tier in by_tier:
                    result[tier][peripheral] = by_tier[tier]
        return result

    # ── Temperature Schedule ────────────────────────────────

    async def set_temperature_schedule(
        self,
        hour: datetime,
        limit_upper: float | None,
        limit_lower: float | None,
    ) -> None:
        await self.db.execute(
            """INSERT INTO temperature_schedule (hour, limit_upper, limit_lower)
               VALUES (?, ?, ?)
               ON CONFLICT(hour) DO UPDATE SET
                   limit_upper = excluded.limit_upper,
                   limit_lower = excluded.limit_lower""",
            (_iso(start_of_hour(hour)), limit_upper, limit_lower),
        )
        await self.db.commit()

    async def get_temperature_schedule(
        self, start: datetime, end: datetime
    ) -> dict[datetime, ScheduleOverride]:
        """Overrides for hours in [start, end], keyed by UTC hour."""
        async with self.db.execute(
            """SELECT hour, limit_upper, limit_lower FROM temperature_schedule
               WHERE hour >= ? AND hour <= ?
                 AND (limit_upper IS NOT NULL OR limit_lower IS NOT NULL)
               ORDER BY hour""",
            (_iso(start_of_hour(start)), _iso(start_of_hour(end))),
        ) as cursor:
            rows = await cursor.fetchall()
        return {
            datetime.fromisoformat(r["hour"]): ScheduleOverride(
                ceiling_upper=r["limit_upper"],
                ceiling_lower=r["limit_lower"],
            )
            for r in rows
        }

    # ── Heating Plan ────────────────────────────────────────

    async def get_heating_plan(self, current_hour: datetime | None = None) -> dict[str, dict[str, Any]]:
        """Stored plan rows from ``current_hour`` onwards, keyed by ISO hour."""
        since = start_of_hour(current_hour)
        async with self.db.execute(
            "SELECT * FROM heating_plan WHERE timestamp >= ? ORDER BY timestamp",
            (_iso(since),),
        ) as cursor:
            rows = await cursor.fetchall()
        plan = {}
        for r in rows:
            row = dict(r)
            row["locked"] = bool(row["locked"])
            row["tier"] = Tier(row["tier"]).name
            row["options"] = json.loads(row.pop("options_json") or "{}")
            plan[row["timestamp"]] = row
        return plan

    async def save_plan(
        self,
        records: Iterable[HourRecord],
        options: dict[str, Any],
        current_hour: datetime | None = None,
    ) -> int:
        """Upsert plan rows by hour; only the current hour is locked.

        ``options`` must carry ``target_upper``, ``target_lower`` and
        ``low_tariff_offset``. Each row stores the limits its hour was
        planned against; the current hour also gets the full run options.
        """
        current = _iso(start_of_hour(current_hour))
        now = _now()
        rows = []
        current_options: dict[str, Any] | None = None
        for r in records:
            timestamp = _iso(r.timestamp)
            row_options = _row_options(r, options)
            if timestamp == current:
                current_options = {**options, **row_options}
            rows.append((
                timestamp, int(r.tier), r.power_kw, r.spot_price, r.transmission_price,
                r.total_price, r.delivered_kw, r.cost, r.state.upper, r.state.lower,
                1 if timestamp == current else 0,
                json.dumps(row_options), now, now,
            ))

        await self.db.executemany(
            """INSERT INTO heating_plan
               (timestamp, tier, power_kw, price, transmission_price, total_price,
                actual_power, cost, t_upper, t_lower, locked, options_json,
                created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(timestamp) DO UPDATE SET
                   tier = excluded.tier,
                   power_kw = excluded.power_kw,
                   price = excluded.price,
                   transmission_price = excluded.transmission_price,
                   total_price = excluded.total_price,
                   actual_power = excluded.actual_power,
                   cost = excluded.cost,
                   t_upper = excluded.t_upper,
                   t_lower = excluded.t_lower,
                   locked = excluded.locked,
                   options_json = excluded.options_json,
                   updated_at = excluded.updated_at""",
            rows,
        )
        if current_options is not None:
            await self.db.execute(
                "UPDATE heating_plan SET options_json = ? WHERE timestamp = ?",
                (json.dumps(current_options), current),
            )
        await self.db.commit()
        logger.info("Saved heating plan: %d hours (current hour %s)", len(rows), current)
        return len(rows)


def _row_options(record: HourRecord, options: dict[str, Any]) -> dict[str, Any]:
    """Limits actually applied to one hour."""
    target_upper = options["target_upper"]
    if record.scheduled_ceiling_upper is not None:
        limit_upper = record.scheduled_ceiling_upper
    elif record.is_low_tariff_hour or record.flex_price_used:
        limit_upper = target_upper - options["low_tariff_offset"]
    else:
        limit_upper = target_upper
    limit_lower = (
        record.scheduled_ceiling_lower
        if record.scheduled_ceiling_lower is not None
        else options["target_lower"]
    )
    return {
        "is_low_tariff_hour": record.is_low_tariff_hour,
        "flex_price_used": record.flex_price_used,
        "scheduled_ceiling_upper": record.scheduled_ceiling_upper,
        "scheduled_ceiling_lower": record.scheduled_ceiling_lower,
        "limit_upper": limit_upper,
        "limit_lower": limit_lower,
    }
