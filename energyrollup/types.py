from __future__ import annotations
from typing import Dict, List, Optional
from dataclasses import dataclass, field
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import canon


## Documents as stored (camelCase keys on the wire, snake_case in Python)
class AggregateDoc(BaseModel):
    """Common fields of every aggregate document."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    timezone: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    def to_store(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class HourlyDoc(AggregateDoc):
    """
    One (tenant, date, hour) document.

    Live writes keep `lastSeenTotal` as the delta baseline and accumulate
    per-slice deltas in `buckets`. Backfill writes carry `deltaKWh` and
    fully seeded buckets instead of counter totals.
    """

    total_energy_at_end: Optional[float] = Field(default=None, alias="totalEnergyAtEnd")
    last_seen_total: Optional[float] = Field(default=None, alias="lastSeenTotal")
    last_seen_minute: Optional[int] = Field(
        default=None, alias="lastSeenMinute", ge=0, le=59
    )
    buckets: Dict[str, float] = Field(default_factory=dict)
    is_partial: Optional[bool] = Field(default=None, alias="isPartial")
    delta_kwh: Optional[float] = Field(default=None, alias="deltaKWh")

    @field_validator("buckets")
    @classmethod
    def _known_non_negative_buckets(cls, v: Dict[str, float]) -> Dict[str, float]:
        for key, kwh in v.items():
            if key not in canon.BUCKET_KEYS:
                raise ValueError(f"Unknown bucket key '{key}'")
            if kwh < 0:
                raise ValueError(f"Bucket '{key}' holds negative energy {kwh}")
        return v

    @property
    def energy_kwh(self) -> float:
        """Energy attributed to this hour: bucket sum, else the seeded deltaKWh."""
        if self.buckets:
            return round(sum(self.buckets.values()), canon.PRECISION)
        return self.delta_kwh or 0.0


class DailyDoc(AggregateDoc):
    delta_kwh: float = Field(default=0.0, alias="deltaKWh")


class PeriodDoc(AggregateDoc):
    """Weekly/monthly document; `deltaKWh` is the sum of per-date contributions."""

    delta_kwh: float = Field(default=0.0, alias="deltaKWh")
    contributions: Dict[str, float] = Field(default_factory=dict)


class WeeklyDoc(PeriodDoc):
    range_label: Optional[str] = Field(default=None, alias="rangeLabel")


class MonthlyDoc(PeriodDoc): ...


## Calendar
@dataclass(frozen=True)
class LocalInstant:
    """Tenant-local wall-clock breakdown of an instant."""

    year: int
    month: int
    day: int
    hour: int
    minute: int
    timezone: str = canon.DEFAULT_TZ

    @property
    def date(self) -> date:
        return date(self.year, self.month, self.day)


## Tenants and run reports
@dataclass
class Tenant:
    tenant_id: str
    timezone: Optional[str] = None  # None: use the configured default
    sensor_ids: List[str] = field(default_factory=list)


@dataclass
class TickReport:
    started_at: datetime
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    duration_s: float = 0.0

    @property
    def tenants(self) -> int:
        return len(self.processed) + len(self.skipped) + len(self.failed)


@dataclass
class BackfillResult:
    tenant_id: str
    created: List[str] = field(default_factory=list)  # date keys seeded
    skipped: List[str] = field(default_factory=list)  # date keys already present
    hours_written: int = 0
    total_kwh: float = 0.0
