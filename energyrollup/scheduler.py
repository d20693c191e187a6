from __future__ import annotations
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from . import counters, exceptions, merge, periods, utils
from .config import Settings, get_settings
from .counters import CounterStore
from .directory import TenantDirectory
from .store import DocumentStore
from .types import TickReport

logger = logging.getLogger(__name__)

JOB_ID = "aggregate_realtime_buckets"


@dataclass
class Collaborators:
    directory: TenantDirectory
    counters: CounterStore
    db: DocumentStore


async def run_tenant(
    deps: Collaborators,
    tenant_id: str,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """
    One tenant's pipeline for one tick:
    timezone -> sensor bindings -> live total -> hourly merge -> day refresh.

    Returns False when the tenant has no sensor bindings (nothing written).
    """
    cfg = settings or get_settings()
    at = now or utils.utc_now()

    tz = periods.zone_or_default(
        await deps.directory.get_timezone(tenant_id), cfg.default_timezone, tenant=tenant_id
    )
    sensor_ids = await deps.directory.get_sensor_ids(tenant_id)
    if not sensor_ids:
        logger.debug("Tenant %s has no sensor bindings; skipped", tenant_id)
        return False

    total = await counters.read_total_energy(deps.counters, tenant_id, sensor_ids)
    local = periods.resolve_local_now(tz, at)
    day = periods.date_key(local)

    await merge.merge_hourly_delta(
        deps.db,
        tenant_id,
        day,
        periods.hour_key(local),
        local.minute,
        total,
        timezone=tz,
        now=at,
        max_attempts=cfg.merge_max_attempts,
    )
    await merge.refresh_day(
        deps.db, tenant_id, day, timezone=tz, now=at, max_attempts=cfg.merge_max_attempts
    )
    return True


async def run_tick(
    deps: Collaborators,
    *,
    now: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> TickReport:
    """
    Fan out over every tenant with bounded concurrency and a per-tenant
    timeout. Per-tenant failures are logged and reported, never raised.
    """
    cfg = settings or get_settings()
    at = now or utils.utc_now()
    report = TickReport(started_at=at)
    t0 = time.perf_counter()

    try:
        tenants = await deps.directory.list_tenants()
    except Exception:
        logger.exception("Could not enumerate tenants; tick abandoned")
        return report

    sem = asyncio.Semaphore(cfg.max_concurrency)

    async def guarded(tenant_id: str) -> bool:
        async with sem:
            try:
                return await asyncio.wait_for(
                    run_tenant(deps, tenant_id, now=at, settings=cfg),
                    timeout=cfg.tenant_timeout_seconds,
                )
            except asyncio.TimeoutError as e:
                raise exceptions.TenantTimeout(
                    f"exceeded {cfg.tenant_timeout_seconds}s"
                ) from e

    results = await asyncio.gather(*(guarded(t) for t in tenants), return_exceptions=True)

    for tenant_id, res in zip(tenants, results):
        if isinstance(res, BaseException):
            logger.error(
                "Aggregation for tenant %s failed: %s", tenant_id, res, exc_info=res
            )
            report.failed[tenant_id] = f"{type(res).__name__}: {res}"
        elif res:
            report.processed.append(tenant_id)
        else:
            report.skipped.append(tenant_id)

    report.duration_s = time.perf_counter() - t0
    logger.info(
        "Tick %s: %d processed, %d skipped, %d failed in %.2fs",
        at.isoformat(),
        len(report.processed),
        len(report.skipped),
        len(report.failed),
        report.duration_s,
    )
    return report


def build_scheduler(
    deps: Collaborators, settings: Optional[Settings] = None
) -> AsyncIOScheduler:
    """Cron-style job firing `run_tick` every minute, evaluated in UTC. Not started."""
    cfg = settings or get_settings()
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        run_tick,
        trigger=CronTrigger(minute=cfg.cron_minute, timezone="UTC"),
        args=[deps],
        kwargs={"settings": cfg},
        id=JOB_ID,
        name="Aggregate realtime buckets",
        replace_existing=True,
        # overlapping ticks are tolerated by the transactional merge
        max_instances=cfg.max_overlapping_ticks,
        coalesce=True,
        misfire_grace_time=cfg.misfire_grace_seconds,
    )
    return scheduler


def start_scheduler(
    deps: Collaborators, settings: Optional[Settings] = None
) -> AsyncIOScheduler:
    """Build and start the scheduler on the running event loop."""
    cfg = settings or get_settings()
    scheduler = build_scheduler(deps, cfg)
    scheduler.start()
    logger.info(
        "Scheduler started: cron minute=%r UTC, concurrency=%d, tenant timeout=%.1fs",
        cfg.cron_minute,
        cfg.max_concurrency,
        cfg.tenant_timeout_seconds,
    )
    return scheduler
