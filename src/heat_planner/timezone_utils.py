"""Timezone resolution helpers with pragmatic fallbacks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# Winter offsets, used only when IANA tzdata is unavailable on the host.
_FIXED_FALLBACKS: dict[str, tzinfo] = {
    "Europe/Helsinki": timezone(timedelta(hours=2)),
    "UTC": timezone.utc,
}


def resolve_timezone(tz_name: str) -> tzinfo:
    """Resolve an IANA timezone name with safe fallbacks.

    Order:
    1. IANA database via ZoneInfo.
    2. Known fixed-offset fallback map.
    3. Host local timezone.
    4. UTC.
    """
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        pass

    if tz_name in _FIXED_FALLBACKS:
        return _FIXED_FALLBACKS[tz_name]

    local_tz = datetime.now().astimezone().tzinfo
    if local_tz is not None:
        return local_tz
    return timezone.utc


def start_of_hour(dt: datetime | None = None) -> datetime:
    """Truncate to the hour; naive values are taken as UTC."""
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(minute=0, second=0, microsecond=0)


def local_hour(dt: datetime, tz: tzinfo) -> int:
    """Hour of day of ``dt`` in ``tz``."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).hour


def in_hour_band(hour: int, start: int, end: int) -> bool:
    """True if ``hour`` falls in [start, end); bands may wrap midnight."""
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end
