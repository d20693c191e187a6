"""Historical backfill: synthetic profile, idempotent day skipping, until-now variant."""

import asyncio
from datetime import date, datetime

import pytest
import pytz

from energyrollup import backfill, merge, store
from energyrollup.config import Settings
from energyrollup.store import InMemoryDocumentStore

TZ = "Australia/Brisbane"
WEEKDAY_KWH = 12.3  # 24*0.3 + 5*0.9 + 3*0.2
WEEKEND_KWH = 15.9  # weekday + 24*0.15


def _bne(*args):
    return pytz.timezone(TZ).localize(datetime(*args))


def test_hourly_profile_shape():
    tue = date(2025, 7, 1)
    sat = date(2025, 7, 5)
    assert backfill.hourly_profile(3, tue) == pytest.approx(0.3)
    assert backfill.hourly_profile(19, tue) == pytest.approx(1.2)
    assert backfill.hourly_profile(8, tue) == pytest.approx(0.5)
    assert backfill.hourly_profile(8, sat) == pytest.approx(0.65)


def test_day_profile_totals():
    tue = backfill.day_profile(date(2025, 7, 1))
    assert list(tue.index[:3]) == ["00", "01", "02"] and len(tue) == 24
    assert tue.sum() == pytest.approx(WEEKDAY_KWH)
    assert backfill.day_profile(date(2025, 7, 6)).sum() == pytest.approx(WEEKEND_KWH)


@pytest.mark.asyncio
async def test_backfill_range_writes_hours_days_weeks_months(db):
    res = await backfill.backfill_range(
        db, "u1", date(2025, 7, 1), date(2025, 7, 7), timezone=TZ
    )
    assert res.created == [f"2025-07-0{d}" for d in range(1, 8)]
    assert res.skipped == []
    assert res.hours_written == 7 * 24

    hours = await db.children(store.hours_prefix("u1", "2025-07-01"))
    assert len(hours) == 24
    h19 = hours["19"].data
    assert h19["deltaKWh"] == pytest.approx(1.2)
    assert h19["isPartial"] is False
    assert sum(h19["buckets"].values()) == pytest.approx(1.2)

    daily = (await db.get(store.daily_path("u1", "2025-07-01"))).data
    assert daily["deltaKWh"] == pytest.approx(WEEKDAY_KWH)
    assert daily["timezone"] == TZ

    # W27 = Mon 06-30 .. Sun 07-06; 06-30 is outside the range
    w27 = (await db.get(store.weekly_path("u1", "2025-W27"))).data
    assert w27["deltaKWh"] == pytest.approx(4 * WEEKDAY_KWH + 2 * WEEKEND_KWH)
    assert w27["rangeLabel"] == "2025-06-30 - 2025-07-06"
    w28 = (await db.get(store.weekly_path("u1", "2025-W28"))).data
    assert w28["deltaKWh"] == pytest.approx(WEEKDAY_KWH)

    july = (await db.get(store.monthly_path("u1", "2025-07"))).data
    assert july["deltaKWh"] == pytest.approx(5 * WEEKDAY_KWH + 2 * WEEKEND_KWH)
    assert res.total_kwh == pytest.approx(july["deltaKWh"])


@pytest.mark.asyncio
async def test_backfill_range_is_idempotent(db):
    await backfill.backfill_range(db, "u1", date(2025, 7, 1), date(2025, 7, 7), timezone=TZ)
    before = db.dump()
    writes = db.writes

    res = await backfill.backfill_range(
        db, "u1", date(2025, 7, 1), date(2025, 7, 7), timezone=TZ
    )
    assert res.created == []
    assert len(res.skipped) == 7
    assert db.dump() == before
    assert db.writes == writes


@pytest.mark.asyncio
async def test_backfill_only_fills_missing_days(db):
    await backfill.backfill_range(db, "u1", date(2025, 7, 2), date(2025, 7, 2), timezone=TZ)
    res = await backfill.backfill_range(
        db, "u1", date(2025, 7, 1), date(2025, 7, 3), timezone=TZ
    )
    assert res.created == ["2025-07-01", "2025-07-03"]
    assert res.skipped == ["2025-07-02"]
    july = (await db.get(store.monthly_path("u1", "2025-07"))).data
    assert july["deltaKWh"] == pytest.approx(3 * WEEKDAY_KWH)


@pytest.mark.asyncio
async def test_rewrite_mode_replaces_instead_of_adding(db):
    for _ in range(2):
        res = await backfill.backfill_range(
            db, "u1", date(2025, 7, 1), date(2025, 7, 2), timezone=TZ, skip_existing=False
        )
        assert len(res.created) == 2
    july = (await db.get(store.monthly_path("u1", "2025-07"))).data
    assert july["deltaKWh"] == pytest.approx(2 * WEEKDAY_KWH)


@pytest.mark.asyncio
async def test_custom_profile(db):
    res = await backfill.backfill_range(
        db, "u1", date(2025, 7, 1), date(2025, 7, 1), lambda hour, day: 1.0, timezone=TZ
    )
    assert res.total_kwh == 24.0


@pytest.mark.asyncio
async def test_aware_bounds_are_read_in_tenant_zone(db):
    # 2025-06-30 22:00 UTC is already 2025-07-01 in Brisbane
    start = pytz.utc.localize(datetime(2025, 6, 30, 22, 0))
    res = await backfill.backfill_range(db, "u1", start, start, timezone=TZ)
    assert res.created == ["2025-07-01"]


@pytest.mark.asyncio
async def test_until_now_seeds_elapsed_hours_of_today(db):
    now = _bne(2025, 7, 3, 5, 30)
    res = await backfill.backfill_until_now(db, "u1", date(2025, 7, 1), timezone=TZ, now=now)
    assert res.created == ["2025-07-01", "2025-07-02"]
    assert res.hours_written == 48 + 5

    today = await db.children(store.hours_prefix("u1", "2025-07-03"))
    assert sorted(today) == ["00", "01", "02", "03", "04"]
    # today stays open for the live path
    assert not await db.exists(store.daily_path("u1", "2025-07-03"))

    again = await backfill.backfill_until_now(db, "u1", date(2025, 7, 1), timezone=TZ, now=now)
    assert again.created == [] and again.skipped == ["2025-07-01", "2025-07-02"]
    assert again.hours_written == 0


@pytest.mark.asyncio
async def test_until_now_keeps_live_hours(db):
    await merge.merge_hourly_delta(db, "u1", "2025-07-03", "02", 5, 10.0, timezone=TZ)
    live = (await db.get(store.hourly_path("u1", "2025-07-03", "02"))).data

    now = _bne(2025, 7, 3, 4, 0)
    res = await backfill.backfill_until_now(db, "u1", date(2025, 7, 3), timezone=TZ, now=now)
    assert res.created == []
    assert res.hours_written == 3  # 00, 01, 03
    assert (await db.get(store.hourly_path("u1", "2025-07-03", "02"))).data == live


@pytest.mark.asyncio
async def test_until_now_at_midnight_seeds_nothing_today(db):
    now = _bne(2025, 7, 3, 0, 20)
    res = await backfill.backfill_until_now(db, "u1", date(2025, 7, 3), timezone=TZ, now=now)
    assert res.hours_written == 0
    assert db.writes == 0


@pytest.mark.asyncio
async def test_overlapping_backfills_do_not_double_count():
    db = InMemoryDocumentStore(latency=0.001)
    await asyncio.gather(
        backfill.backfill_range(db, "u1", date(2025, 7, 1), date(2025, 7, 1), timezone="UTC"),
        backfill.backfill_range(db, "u1", date(2025, 7, 1), date(2025, 7, 1), timezone="UTC"),
    )
    for path in (
        store.daily_path("u1", "2025-07-01"),
        store.weekly_path("u1", "2025-W27"),
        store.monthly_path("u1", "2025-07"),
    ):
        assert (await db.get(path)).data["deltaKWh"] == pytest.approx(WEEKDAY_KWH)


@pytest.mark.asyncio
async def test_invalid_zone_falls_back_to_configured_default(db):
    cfg = Settings(_env_file=None, default_timezone="Australia/Sydney")
    # 2025-06-30 20:00 UTC is 2025-07-01 06:00 in Sydney
    now = pytz.utc.localize(datetime(2025, 6, 30, 20, 0))
    res = await backfill.backfill_until_now(
        db, "u1", date(2025, 6, 30), timezone="Mars/Olympus_Mons", now=now, settings=cfg
    )
    assert res.created == ["2025-06-30"]
    assert res.hours_written == 24 + 6
    daily = (await db.get(store.daily_path("u1", "2025-06-30"))).data
    assert daily["timezone"] == "Australia/Sydney"
    assert sorted(await db.children(store.hours_prefix("u1", "2025-07-01")))[-1] == "05"


@pytest.mark.asyncio
async def test_naive_bounds_are_taken_as_utc(db):
    # 22:00 UTC on 06-30 is 08:00 on 07-01 in Brisbane
    naive = datetime(2025, 6, 30, 22, 0)
    res = await backfill.backfill_range(db, "u1", naive, naive, timezone=TZ)
    assert res.created == ["2025-07-01"]
