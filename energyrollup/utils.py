# energyrollup/utils.py
from __future__ import annotations
import math
from datetime import datetime, timezone
from typing import Any, Mapping

import pandas as pd

from . import canon
from .types import HourlyDoc


def round_kwh(value: float) -> float:
    """Round to the stored kWh precision (1e-6)."""
    return round(float(value), canon.PRECISION)


def as_kwh(value: Any) -> float:
    """
    Coerce a loosely-typed energy field to float.
    Missing, non-numeric, NaN or infinite values count as zero.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    return out if math.isfinite(out) else 0.0


def bucket_index(minute: int) -> int:
    """Sub-hour slice (1..6) for a minute of the hour."""
    if not 0 <= minute <= 59:
        raise ValueError(f"Minute must be within 0..59, got {minute}")
    return minute // canon.BUCKET_MINUTES + 1


def bucket_key(minute: int) -> str:
    return f"b{bucket_index(minute)}"


def split_evenly(kwh: float) -> dict[str, float]:
    """Spread an hour's energy across all buckets; the last absorbs rounding."""
    scale = 10**canon.PRECISION
    per = (round(kwh * scale) // canon.BUCKET_COUNT) / scale
    out = {k: per for k in canon.BUCKET_KEYS}
    out[canon.BUCKET_KEYS[-1]] = round_kwh(kwh - per * (canon.BUCKET_COUNT - 1))
    return out


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hourly_frame(docs: Mapping[str, HourlyDoc]) -> pd.DataFrame:
    """
    Tabulate a day's hourly documents.

    Index: hour key ('00'..'23'), only hours present in `docs`.
    Columns: b1..b6 (0.0 where absent), 'energy_kwh' (bucket sum or seeded deltaKWh).
    """
    cols = [*canon.BUCKET_KEYS, "energy_kwh"]
    if not docs:
        return pd.DataFrame(columns=cols, index=pd.Index([], name="hour"), dtype=float)

    rows = {
        hour: {**{k: doc.buckets.get(k, 0.0) for k in canon.BUCKET_KEYS},
               "energy_kwh": doc.energy_kwh}
        for hour, doc in docs.items()
    }
    out = pd.DataFrame.from_dict(rows, orient="index", columns=cols).astype(float)
    out.index.name = "hour"
    return out.sort_index()
