from __future__ import annotations
import abc
import copy
import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from . import canon, exceptions, utils

logger = logging.getLogger(__name__)


class CounterStore(abc.ABC):
    """Read-only view of the live counter snapshot owned by upstream telemetry."""

    @abc.abstractmethod
    async def snapshot(self) -> Mapping[str, Any]:
        """Return the whole snapshot: key -> {'energy': cumulative kWh, ...}."""


class InMemoryCounterStore(CounterStore):
    def __init__(self, readings: Optional[Dict[str, Any]] = None):
        self._readings: Dict[str, Any] = dict(readings or {})

    def set_energy(self, key: str, energy: Any) -> None:
        self._readings.setdefault(key, {})
        self._readings[key] = {**self._readings[key], canon.ENERGY_FIELD: energy}

    async def snapshot(self) -> Mapping[str, Any]:
        return copy.deepcopy(self._readings)


def sensor_id_for_key(key: str) -> Optional[str]:
    """
    Map a snapshot key to a sensor id, or None if the key is not a sensor.

    The bare legacy key 'SensorReadings' is the first sensor.
    """
    if key == canon.SENSOR_PREFIX:
        return canon.LEGACY_SENSOR_ID
    if key.startswith(canon.SENSOR_PREFIX + "_"):
        return key
    return None


def total_energy(snapshot: Mapping[str, Any], sensor_ids: Iterable[str]) -> float:
    """
    Sum cumulative energy over the sensors in `sensor_ids`.
    Missing or non-numeric energy fields count as zero.
    """
    allowed = set(sensor_ids)
    total = 0.0
    for key, entry in snapshot.items():
        sid = sensor_id_for_key(str(key))
        if sid is None or sid not in allowed:
            continue
        raw = entry.get(canon.ENERGY_FIELD) if isinstance(entry, Mapping) else None
        total += utils.as_kwh(raw)
    return utils.round_kwh(total)


async def read_total_energy(
    store: CounterStore, tenant_id: str, sensor_ids: Iterable[str]
) -> float:
    """
    Current cumulative kWh for a tenant's bound sensors.

    Callers skip tenants without bindings; an empty binding set reads nothing
    and returns 0.0.
    """
    sensor_ids = list(sensor_ids)
    if not sensor_ids:
        return 0.0
    try:
        snap = await store.snapshot()
    except Exception as e:
        raise exceptions.CounterReadFailure(
            f"Live counter read failed for tenant {tenant_id}: {e}"
        ) from e
    if not isinstance(snap, Mapping):
        raise exceptions.CounterReadFailure(
            f"Live counter snapshot for tenant {tenant_id} is not a mapping"
        )
    return total_energy(snap, sensor_ids)
