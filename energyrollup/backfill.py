from __future__ import annotations
import logging
from datetime import date, datetime
from typing import Callable, Iterable, Optional

import pandas as pd

from . import exceptions, merge, periods, store, utils
from .config import Settings, get_settings
from .store import DocumentStore
from .types import BackfillResult, HourlyDoc, LocalInstant

logger = logging.getLogger(__name__)

# (hour of day 0..23, tenant-local date) -> kWh consumed in that hour
Profile = Callable[[int, date], float]


def hourly_profile(hour: int, day: date) -> float:
    """
    Deterministic household load shape: base load with an evening peak,
    a small morning bump and a weekend uplift.
    """
    base = 0.3
    evening = 0.9 if 18 <= hour <= 22 else 0.0
    morning = 0.2 if 7 <= hour <= 9 else 0.0
    weekend = 0.15 if day.weekday() >= 5 else 0.0  # Sat/Sun
    return base + evening + morning + weekend


def day_profile(day: date, profile: Profile = hourly_profile, hours: Iterable[int] = range(24)) -> pd.Series:
    """kWh per hour for one date, indexed by hour key ('00'..'23')."""
    hours = list(hours)
    values = [utils.round_kwh(profile(h, day)) for h in hours]
    return pd.Series(values, index=[periods.hour_key(h) for h in hours], name="kwh", dtype=float)


def seeded_hour(kwh: float, *, timezone: str, now: datetime) -> HourlyDoc:
    """A completed historical hour: absolute value, buckets spread evenly."""
    return HourlyDoc(
        delta_kwh=utils.round_kwh(kwh),
        buckets=utils.split_evenly(kwh),
        is_partial=False,
        timezone=timezone,
        created_at=now,
        updated_at=now,
    )


def _local_date(tz: str, instant: LocalInstant | date | datetime) -> date:
    if isinstance(instant, LocalInstant):
        return instant.date
    if isinstance(instant, datetime):
        # instants (naive ones taken as UTC) are read on the tenant's wall clock
        return periods.local_instant(tz, instant).date
    return instant


async def backfill_range(
    db: DocumentStore,
    tenant_id: str,
    start: LocalInstant | date | datetime,
    end: LocalInstant | date | datetime,
    profile: Profile = hourly_profile,
    *,
    timezone: Optional[str],
    skip_existing: bool = True,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> BackfillResult:
    """
    Seed every tenant-local day in [start, end] with a synthetic hourly profile.

    With skip_existing, a day whose daily document exists is left alone
    (hourly children are not inspected). Without it, every day is rewritten.
    Either way a seeded day's share of its daily/weekly/monthly documents is
    replaced rather than added, so overlapping runs cannot double count.
    """
    cfg = settings or get_settings()
    tz = periods.zone_or_default(timezone, cfg.default_timezone, tenant=tenant_id)
    stamp = now or utils.utc_now()
    result = BackfillResult(tenant_id=tenant_id)

    for key in periods.date_keys_between(_local_date(tz, start), _local_date(tz, end)):
        if skip_existing and await db.exists(store.daily_path(tenant_id, key)):
            logger.debug("Backfill %s/%s already present; skipped", tenant_id, key)
            result.skipped.append(key)
            continue

        hours = day_profile(periods.parse_date_key(key), profile)
        for hour, kwh in hours.items():
            doc = seeded_hour(kwh, timezone=tz, now=stamp)
            await db.put(store.hourly_path(tenant_id, key, hour), doc.to_store())

        total = utils.round_kwh(hours.sum())
        await merge.rollup_day(
            db,
            tenant_id,
            key,
            total,
            timezone=tz,
            replace=True,
            now=stamp,
            max_attempts=cfg.merge_max_attempts,
        )
        result.created.append(key)
        result.hours_written += len(hours)
        result.total_kwh = utils.round_kwh(result.total_kwh + total)

    logger.info(
        "Backfill for tenant %s: %d days seeded, %d skipped, %.3f kWh",
        tenant_id,
        len(result.created),
        len(result.skipped),
        result.total_kwh,
    )
    return result


async def backfill_until_now(
    db: DocumentStore,
    tenant_id: str,
    start: LocalInstant | date | datetime,
    profile: Profile = hourly_profile,
    *,
    timezone: Optional[str],
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> BackfillResult:
    """
    Seed from `start` up to the current tenant-local time.

    Whole days before today go through `backfill_range` (skipping days
    already present). Today only gets the fully elapsed hours, never
    overwrites an existing hour, and gets no daily document, so the live
    path keeps ownership of it.
    """
    cfg = settings or get_settings()
    tz = periods.zone_or_default(timezone, cfg.default_timezone, tenant=tenant_id)
    stamp = now or utils.utc_now()
    local_now = periods.resolve_local_now(tz, stamp)
    today = local_now.date
    key = periods.date_key(today)
    first = _local_date(tz, start)

    if first < today:
        yesterday = periods.parse_date_key(periods.shift_date_key(key, -1))
        result = await backfill_range(
            db,
            tenant_id,
            first,
            yesterday,
            profile,
            timezone=tz,
            skip_existing=True,
            now=stamp,
            settings=cfg,
        )
    else:
        result = BackfillResult(tenant_id=tenant_id)

    if first > today:
        return result

    for hour, kwh in day_profile(today, profile, range(local_now.hour)).items():
        path = store.hourly_path(tenant_id, key, hour)
        doc = seeded_hour(kwh, timezone=tz, now=stamp)
        try:
            await db.put(path, doc.to_store(), expected_version=0)
        except exceptions.VersionConflict:
            continue
        result.hours_written += 1
    return result
