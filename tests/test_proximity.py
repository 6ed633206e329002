from datetime import datetime, timedelta, timezone

import pytest

from schoolbus.core.geo import Coordinate, haversine_km
from schoolbus.domain.models import Position
from schoolbus.eta.proximity import ProximityChecker
from schoolbus.ingestion.tracking import InMemoryTrackingStore


NOW = datetime(2026, 1, 5, 7, 0, tzinfo=timezone.utc)
BUS_AT = Coordinate(lat=37.0, lon=-122.0)


@pytest.fixture
def checker():
    store = InMemoryTrackingStore(clock=lambda: NOW)
    store.record("t1", "bus-1", Position(coordinate=BUS_AT, timestamp=NOW))
    store.record("t1", "bus-old", Position(coordinate=BUS_AT, timestamp=NOW - timedelta(hours=2)))
    return ProximityChecker(store)


def test_bus_one_km_away_is_not_near(checker):
    assert checker.is_near("t1", "bus-1", Coordinate(lat=37.01, lon=-122.0), 0.5) is False


def test_bus_a_hundred_metres_away_is_near(checker):
    assert checker.is_near("t1", "bus-1", Coordinate(lat=37.001, lon=-122.0), 0.5) is True


def test_threshold_is_inclusive(checker):
    stop = Coordinate(lat=37.004, lon=-122.0)
    exact = haversine_km(BUS_AT, stop)

    assert checker.is_near("t1", "bus-1", stop, exact) is True
    assert checker.is_near("t1", "bus-1", stop, exact - 1e-9) is False


def test_unknown_or_stale_bus_is_never_near(checker):
    assert checker.is_near("t1", "bus-missing", BUS_AT, 10) is False
    assert checker.is_near("t1", "bus-old", BUS_AT, 10) is False
    assert checker.is_near("t2", "bus-1", BUS_AT, 10) is False


def test_distance_to(checker):
    assert checker.distance_to("t1", "bus-1", BUS_AT) == 0.0
    assert checker.distance_to("t1", "bus-missing", BUS_AT) is None


def test_negative_threshold_is_rejected(checker):
    with pytest.raises(ValueError):
        checker.is_near("t1", "bus-1", BUS_AT, -0.1)
