from __future__ import annotations
import logging
from datetime import datetime
from typing import Dict, Optional, Type, TypeVar

from pydantic import ValidationError

from . import delta, exceptions, periods, store, utils
from .store import DocumentStore
from .types import AggregateDoc, DailyDoc, HourlyDoc, MonthlyDoc, PeriodDoc, WeeklyDoc

logger = logging.getLogger(__name__)

D = TypeVar("D", bound=AggregateDoc)


def load_doc(model: Type[D], data: Optional[dict], path: str = "") -> D:
    """Validate a stored document; absent documents load as defaults."""
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise exceptions.DocumentError(f"Invalid {model.__name__} at {path}: {e}") from e


def _stamped(doc: D, now: datetime) -> D:
    return doc.model_copy(update={"created_at": doc.created_at or now, "updated_at": now})


# ------------------ hourly ------------------


async def merge_hourly_delta(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    hour_key: str,
    minute: int,
    current_total: float,
    *,
    timezone: str,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> HourlyDoc:
    """
    Merge one counter observation into the hourly document, atomically.

    The delta since the stored `lastSeenTotal` is added to the bucket for
    `minute` (b1..b6); a missing document only establishes the baseline.
    """
    path = store.hourly_path(tenant_id, date_key, hour_key)
    key = utils.bucket_key(minute)
    stamp = now or utils.utc_now()

    def mutate(data: Optional[dict]) -> dict:
        existing = load_doc(HourlyDoc, data, path)
        kwh, baseline = delta.advance(current_total, existing.last_seen_total)
        doc = existing.model_copy(
            update={
                "total_energy_at_end": baseline,
                "last_seen_total": baseline,
                "last_seen_minute": minute,
                "buckets": delta.accumulate(existing.buckets, key, kwh),
                "is_partial": True,
                "timezone": timezone,
            }
        )
        return _stamped(doc, stamp).to_store()

    written = await store.run_transaction(db, path, mutate, max_attempts=max_attempts)
    return load_doc(HourlyDoc, written, path)


async def load_hours(db: DocumentStore, tenant_id: str, date_key: str) -> Dict[str, HourlyDoc]:
    snaps = await db.children(store.hours_prefix(tenant_id, date_key))
    return {hour: load_doc(HourlyDoc, s.data, s.path) for hour, s in snaps.items()}


async def day_total(db: DocumentStore, tenant_id: str, date_key: str) -> float:
    """Energy for a date re-derived from its hourly children."""
    frame = utils.hourly_frame(await load_hours(db, tenant_id, date_key))
    if frame.empty:
        return 0.0
    return utils.round_kwh(frame["energy_kwh"].sum())


# ------------------ rollups ------------------


async def rollup_daily(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    kwh: float,
    *,
    timezone: str,
    replace: bool = False,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> DailyDoc:
    """Add `kwh` to the daily document (or set it, with replace=True)."""
    path = store.daily_path(tenant_id, date_key)
    stamp = now or utils.utc_now()

    def mutate(data: Optional[dict]) -> dict:
        existing = load_doc(DailyDoc, data, path)
        base = 0.0 if replace else existing.delta_kwh
        doc = existing.model_copy(
            update={"delta_kwh": utils.round_kwh(base + kwh), "timezone": timezone}
        )
        return _stamped(doc, stamp).to_store()

    written = await store.run_transaction(db, path, mutate, max_attempts=max_attempts)
    return load_doc(DailyDoc, written, path)


async def _rollup_period(
    db: DocumentStore,
    model: Type[PeriodDoc],
    path: str,
    date_key: str,
    kwh: float,
    *,
    timezone: str,
    replace: bool,
    now: Optional[datetime],
    max_attempts: int,
    extra: Optional[dict] = None,
) -> PeriodDoc:
    stamp = now or utils.utc_now()

    def mutate(data: Optional[dict]) -> dict:
        existing = load_doc(model, data, path)
        contributions = dict(existing.contributions)
        base = 0.0 if replace else contributions.get(date_key, 0.0)
        contributions[date_key] = utils.round_kwh(base + kwh)
        doc = existing.model_copy(
            update={
                "contributions": contributions,
                "delta_kwh": utils.round_kwh(sum(contributions.values())),
                "timezone": timezone,
                **(extra or {}),
            }
        )
        return _stamped(doc, stamp).to_store()

    written = await store.run_transaction(db, path, mutate, max_attempts=max_attempts)
    return load_doc(model, written, path)


async def rollup_weekly(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    kwh: float,
    *,
    timezone: str,
    replace: bool = False,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> WeeklyDoc:
    """Merge a day's energy into its ISO week document."""
    week_key = periods.iso_week_key(periods.parse_date_key(date_key))
    return await _rollup_period(
        db,
        WeeklyDoc,
        store.weekly_path(tenant_id, week_key),
        date_key,
        kwh,
        timezone=timezone,
        replace=replace,
        now=now,
        max_attempts=max_attempts,
        extra={"range_label": periods.week_range_label(week_key)},
    )


async def rollup_monthly(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    kwh: float,
    *,
    timezone: str,
    replace: bool = False,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> MonthlyDoc:
    month_key = periods.month_key(periods.parse_date_key(date_key))
    return await _rollup_period(
        db,
        MonthlyDoc,
        store.monthly_path(tenant_id, month_key),
        date_key,
        kwh,
        timezone=timezone,
        replace=replace,
        now=now,
        max_attempts=max_attempts,
    )


async def rollup_day(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    kwh: float,
    *,
    timezone: str,
    replace: bool = False,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> None:
    """
    Daily, weekly and monthly merges for one date. Each is its own
    transaction; a failure part-way leaves the coarser documents stale
    until the next live tick recomputes the day.
    """
    kw = dict(timezone=timezone, replace=replace, now=now, max_attempts=max_attempts)
    await rollup_daily(db, tenant_id, date_key, kwh, **kw)
    await rollup_weekly(db, tenant_id, date_key, kwh, **kw)
    await rollup_monthly(db, tenant_id, date_key, kwh, **kw)


async def refresh_day(
    db: DocumentStore,
    tenant_id: str,
    date_key: str,
    *,
    timezone: str,
    now: Optional[datetime] = None,
    max_attempts: int = 5,
) -> float:
    """Recompute a date from its hours and replace its daily/weekly/monthly share."""
    total = await day_total(db, tenant_id, date_key)
    await rollup_day(
        db,
        tenant_id,
        date_key,
        total,
        timezone=timezone,
        replace=True,
        now=now,
        max_attempts=max_attempts,
    )
    logger.debug("Recomputed %s for tenant %s: %.6f kWh", date_key, tenant_id, total)
    return total
