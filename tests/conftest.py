import pytest

from energyrollup.config import Settings
from energyrollup.counters import InMemoryCounterStore
from energyrollup.directory import InMemoryTenantDirectory
from energyrollup.scheduler import Collaborators
from energyrollup.store import InMemoryDocumentStore

TZ = "Australia/Brisbane"  # UTC+10, no DST
TENANT = "u1"


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        default_timezone="UTC",
        max_concurrency=4,
        tenant_timeout_seconds=1.0,
        merge_max_attempts=5,
    )


@pytest.fixture
def db():
    return InMemoryDocumentStore()


@pytest.fixture
def counters():
    return InMemoryCounterStore(
        {
            "SensorReadings_1": {"energy": 10.0, "power": 120.0},
            "SensorReadings_2": {"energy": 99.0},
        }
    )


@pytest.fixture
def directory():
    d = InMemoryTenantDirectory()
    d.add_tenant(TENANT, timezone=TZ, sensor_ids=["SensorReadings_1"])
    return d


@pytest.fixture
def deps(directory, counters, db):
    return Collaborators(directory=directory, counters=counters, db=db)
