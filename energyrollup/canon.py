from __future__ import annotations
from typing import Final, Tuple

DEFAULT_TZ: Final[str] = "UTC"

# Sub-hour slicing of the hourly document
BUCKET_MINUTES: Final[int] = 10
BUCKET_COUNT: Final[int] = 60 // BUCKET_MINUTES
BUCKET_KEYS: Final[Tuple[str, ...]] = tuple(f"b{i}" for i in range(1, BUCKET_COUNT + 1))

# kWh values are stored rounded to 1e-6
PRECISION: Final[int] = 6

HOURLY: Final[str] = "hourly"
DAILY: Final[str] = "daily"
WEEKLY: Final[str] = "weekly"
MONTHLY: Final[str] = "monthly"

ROOT_TEMPLATE: Final[str] = "users/{tenant}/historical/root"

# Live counter snapshot keys
SENSOR_PREFIX: Final[str] = "SensorReadings"
LEGACY_SENSOR_ID: Final[str] = "SensorReadings_1"
ENERGY_FIELD: Final[str] = "energy"
