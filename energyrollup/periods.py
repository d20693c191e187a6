"""
Tenant-local calendar breakdown and period keys.

All conversions go through IANA zone rules (zoneinfo), never fixed offsets.
Keys carry the tenant-local date but no zone suffix, e.g. '2025-07-01',
'2025-W27', '2025-07'.
"""

from __future__ import annotations
import logging
import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pandas as pd

from . import canon, exceptions
from .types import LocalInstant

logger = logging.getLogger(__name__)

Instant = Union[LocalInstant, date, datetime, pd.Timestamp]

_WEEK_KEY = re.compile(r"^(\d{4})-W(\d{2})$")


def resolve_zone(tz: str) -> ZoneInfo:
    """Return the IANA zone for `tz` or raise InvalidTimezone."""
    if not isinstance(tz, str) or not tz.strip():
        raise exceptions.InvalidTimezone(f"Timezone must be a non-empty string, got {tz!r}")
    try:
        return ZoneInfo(tz.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as e:
        raise exceptions.InvalidTimezone(f"Unknown timezone {tz!r}") from e


def zone_or_default(
    tz: Optional[str], default: str = canon.DEFAULT_TZ, *, tenant: Optional[str] = None
) -> str:
    """Validated zone name, falling back to `default` (logged) when absent or invalid."""
    if tz is None or (isinstance(tz, str) and not tz.strip()):
        return default
    try:
        resolve_zone(tz)
    except exceptions.InvalidTimezone:
        logger.warning(
            "Invalid timezone %r for tenant %s; falling back to %s", tz, tenant, default
        )
        return default
    return tz.strip()


def _to_utc(at: Optional[datetime | pd.Timestamp]) -> pd.Timestamp:
    if at is None:
        return pd.Timestamp.now(tz="UTC")
    ts = pd.Timestamp(at)
    # naive instants are taken as UTC
    return ts.tz_localize("UTC") if ts.tz is None else ts.tz_convert("UTC")


def local_instant(tz: str, at: Optional[datetime | pd.Timestamp] = None) -> LocalInstant:
    """Break an instant (default: now) down into tenant-local wall-clock fields."""
    local = _to_utc(at).tz_convert(resolve_zone(tz))
    return LocalInstant(
        year=local.year,
        month=local.month,
        day=local.day,
        hour=local.hour,
        minute=local.minute,
        timezone=tz,
    )


def resolve_local_now(tz: str, now: Optional[datetime | pd.Timestamp] = None) -> LocalInstant:
    return local_instant(tz, now)


def local_to_utc_instant(tz: str, y: int, m: int, d: int, hh: int = 0, mm: int = 0) -> pd.Timestamp:
    """
    UTC instant of a tenant-local wall-clock time.

    DST gaps shift forward to the first valid instant; DST overlaps resolve
    to the first (daylight) occurrence.
    """
    naive = pd.Timestamp(year=y, month=m, day=d, hour=hh, minute=mm)
    local = naive.tz_localize(resolve_zone(tz), ambiguous=True, nonexistent="shift_forward")
    return local.tz_convert("UTC")


def _as_date(instant: Instant) -> date:
    if isinstance(instant, LocalInstant):
        return instant.date
    if isinstance(instant, datetime):  # includes pd.Timestamp
        return instant.date()
    if isinstance(instant, date):
        return instant
    raise TypeError(f"Unsupported instant type: {type(instant).__name__}")


def date_key(instant: Instant) -> str:
    return _as_date(instant).strftime("%Y-%m-%d")


def hour_key(instant: LocalInstant | datetime | int) -> str:
    hour = instant if isinstance(instant, int) else instant.hour
    if not 0 <= hour <= 23:
        raise ValueError(f"Hour must be within 0..23, got {hour}")
    return f"{hour:02d}"


def month_key(instant: Instant) -> str:
    return _as_date(instant).strftime("%Y-%m")


def iso_week_key(instant: Instant) -> str:
    """ISO-8601 week key: weeks start Monday, week 1 holds the year's first Thursday."""
    iso_year, week, _ = _as_date(instant).isocalendar()
    return f"{iso_year}-W{week:02d}"


def parse_date_key(key: str) -> date:
    return datetime.strptime(key, "%Y-%m-%d").date()


def week_monday(week_key: str) -> date:
    m = _WEEK_KEY.match(week_key)
    if m is None:
        raise ValueError(f"Week key must look like 'YYYY-Www', got {week_key!r}")
    return date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)


def week_range_label(week_key: str) -> str:
    """'YYYY-MM-DD - YYYY-MM-DD' spanning Monday through Sunday of the ISO week."""
    monday = week_monday(week_key)
    sunday = monday + timedelta(days=6)
    return f"{date_key(monday)} - {date_key(sunday)}"


def shift_date_key(key: str, days: int) -> str:
    return date_key(parse_date_key(key) + timedelta(days=days))


def shift_week_key(key: str, weeks: int) -> str:
    return iso_week_key(week_monday(key) + timedelta(weeks=weeks))


def shift_month_key(key: str, months: int) -> str:
    return (pd.Period(key, freq="M") + months).strftime("%Y-%m")


def date_keys_between(start: Instant, end: Instant) -> List[str]:
    """Inclusive list of date keys from `start` to `end` (empty if end < start)."""
    days = pd.date_range(_as_date(start), _as_date(end), freq="D")
    return [d.strftime("%Y-%m-%d") for d in days]
