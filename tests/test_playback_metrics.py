from datetime import datetime, timedelta, timezone

import pytest

from schoolbus.core.geo import Coordinate
from schoolbus.domain.models import Position, StudentEvent
from schoolbus.playback.metrics import build_playback, calculate_route_metrics


T0 = datetime(2026, 1, 5, 7, 0, tzinfo=timezone.utc)


def _trail() -> list[Position]:
    return [
        Position(coordinate=Coordinate(lat=37.00, lon=-122.0), timestamp=T0, speed=0),
        Position(coordinate=Coordinate(lat=37.01, lon=-122.0), timestamp=T0 + timedelta(seconds=60), speed=20),
        Position(coordinate=Coordinate(lat=37.02, lon=-122.0), timestamp=T0 + timedelta(seconds=120), speed=40),
    ]


def test_route_metrics_for_trail():
    metrics = calculate_route_metrics(_trail(), speed_limit_mph=35)

    assert metrics.total_distance_miles == pytest.approx(1.38, abs=0.01)
    assert metrics.total_distance_km == pytest.approx(2.22, abs=0.01)
    assert metrics.duration_minutes == 2.0
    assert metrics.duration_seconds == 120.0
    assert metrics.max_speed_mph == 40.0
    assert metrics.avg_speed_mph == 30.0
    assert metrics.speeding_events == 1
    assert metrics.moving_time_minutes == 2.0
    assert metrics.idle_time_minutes == 0.0


def test_route_metrics_sorts_input_and_counts_idle():
    trail = list(reversed(_trail()))
    trail.append(
        Position(coordinate=Coordinate(lat=37.02, lon=-122.0), timestamp=T0 + timedelta(seconds=300), speed=0)
    )
    metrics = calculate_route_metrics(trail)
    assert metrics.duration_minutes == 5.0
    assert metrics.idle_time_minutes == 3.0


def test_route_metrics_empty():
    metrics = calculate_route_metrics([])
    assert metrics.total_distance_miles == 0.0
    assert metrics.speeding_events == 0


def test_playback_timeline_tracks_students_on_board():
    events = [
        StudentEvent(
            student_id="s1",
            student_name="Ana",
            event_type="pickup",
            timestamp=T0 + timedelta(seconds=30),
            location_name="Oak",
        ),
        StudentEvent(
            student_id="s2",
            student_name="Ben",
            event_type="pickup",
            timestamp=T0 + timedelta(seconds=45),
            present=False,
        ),
        StudentEvent(
            student_id="s1",
            student_name="Ana",
            event_type="dropoff",
            timestamp=T0 + timedelta(seconds=90),
        ),
    ]
    playback = build_playback("bus-1", _trail(), events)

    assert playback["bus_id"] == "bus-1"
    assert playback["total_positions"] == 3
    assert playback["total_student_events"] == 3

    timeline = playback["playback_data"]
    assert [pt["type"] for pt in timeline] == [
        "position",
        "student_event",
        "student_event",
        "position",
        "student_event",
        "position",
    ]
    # Absent students never count as boarded.
    assert [pt["on_board_count"] for pt in timeline] == [0, 1, 1, 1, 0, 0]
    assert timeline[1]["on_board_students"][0]["name"] == "Ana"
