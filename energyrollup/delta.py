from __future__ import annotations
from typing import Dict, Optional, Tuple

from . import utils


def compute_delta(current_total: float, last_seen_total: Optional[float]) -> float:
    """
    Non-negative kWh consumed since the last observation.

    A missing baseline means this is the first observation (zero delta).
    A counter that went backwards (meter reboot, firmware reset) yields zero;
    the caller then moves the baseline down to the new total.
    """
    if last_seen_total is None:
        return 0.0
    return max(0.0, utils.round_kwh(current_total - last_seen_total))


def advance(
    current_total: float, last_seen_total: Optional[float]
) -> Tuple[float, float]:
    """Return (delta, new_baseline); the baseline always becomes the current total."""
    return compute_delta(current_total, last_seen_total), utils.round_kwh(current_total)


def accumulate(buckets: Dict[str, float], key: str, delta: float) -> Dict[str, float]:
    """Add `delta` into `buckets[key]`; a zero delta never creates a new slice."""
    out = dict(buckets)
    if delta <= 0 and key not in out:
        return out
    out[key] = utils.round_kwh(out.get(key, 0.0) + delta)
    return out
