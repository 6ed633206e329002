"""
Route playback.

Replays a bus's GPS trail for a time window and merges it with student pickup/drop-off
events, so a dashboard can scrub through a trip and see who was on board at each point.
Distances here are accumulated in miles (speed limits and GPS speeds are mph) and
reported in both units.
"""

from __future__ import annotations

from typing import Any, Sequence

from schoolbus.core.geo import haversine_mi, miles_to_km
from schoolbus.domain.models import Position, RouteMetrics, StudentEvent

DEFAULT_SPEED_LIMIT_MPH = 35.0


def calculate_route_metrics(
    positions: Sequence[Position], *, speed_limit_mph: float = DEFAULT_SPEED_LIMIT_MPH
) -> RouteMetrics:
    """Distance, duration, speed and idle statistics for an ordered GPS trail."""
    if not positions:
        return RouteMetrics()

    ordered = sorted(positions, key=lambda p: p.timestamp)
    total_miles = 0.0
    total_seconds = 0.0
    idle_seconds = 0.0
    moving_seconds = 0.0
    speeds: list[float] = []
    speeding_events = 0

    for prev, cur in zip(ordered, ordered[1:]):
        total_miles += haversine_mi(prev.coordinate, cur.coordinate)
        elapsed = (cur.timestamp - prev.timestamp).total_seconds()
        total_seconds += elapsed

        speed = float(cur.speed or 0)
        if speed > 0:
            speeds.append(speed)
            moving_seconds += elapsed
            if speed > speed_limit_mph:
                speeding_events += 1
        else:
            idle_seconds += elapsed

    avg_speed = sum(speeds) / len(speeds) if speeds else 0.0
    max_speed = max(speeds) if speeds else 0.0

    return RouteMetrics(
        total_distance_miles=round(total_miles, 2),
        total_distance_km=round(miles_to_km(total_miles), 2),
        duration_minutes=round(total_seconds / 60, 1),
        duration_seconds=total_seconds,
        max_speed_mph=round(max_speed, 1),
        max_speed_kmh=round(miles_to_km(max_speed), 1),
        avg_speed_mph=round(avg_speed, 1),
        avg_speed_kmh=round(miles_to_km(avg_speed), 1),
        speeding_events=speeding_events,
        idle_time_minutes=round(idle_seconds / 60, 1),
        moving_time_minutes=round(moving_seconds / 60, 1),
    )


def build_timeline(
    positions: Sequence[Position], student_events: Sequence[StudentEvent]
) -> list[dict[str, Any]]:
    """Interleave GPS fixes and attendance events by time, with an on-board snapshot per point."""
    points: list[dict[str, Any]] = []
    for p in positions:
        points.append(
            {
                "type": "position",
                "timestamp": p.timestamp,
                "coordinates": {"latitude": p.coordinate.lat, "longitude": p.coordinate.lon},
                "speed": p.speed or 0,
                "heading": p.heading or 0,
            }
        )
    for e in student_events:
        points.append(
            {
                "type": "student_event",
                "event_type": e.event_type,
                "timestamp": e.timestamp,
                "student": {"id": e.student_id, "name": e.student_name, "grade": e.grade},
                "location": e.location_name,
                "coordinates": (
                    {"latitude": e.coordinate.lat, "longitude": e.coordinate.lon} if e.coordinate else None
                ),
                "present": e.present,
            }
        )

    # Stable sort: a fix and an event at the same instant keep input order (fixes first).
    points.sort(key=lambda pt: pt["timestamp"])

    on_board: dict[str, dict[str, Any]] = {}
    for pt in points:
        if pt["type"] == "student_event" and pt["present"]:
            student = pt["student"]
            if pt["event_type"] == "pickup":
                on_board[student["id"]] = {**student, "boarded_at": pt["timestamp"]}
            else:
                on_board.pop(student["id"], None)
        pt["on_board_students"] = list(on_board.values())
        pt["on_board_count"] = len(on_board)
    return points


def build_playback(
    bus_id: str,
    positions: Sequence[Position],
    student_events: Sequence[StudentEvent] = (),
    *,
    speed_limit_mph: float = DEFAULT_SPEED_LIMIT_MPH,
) -> dict[str, Any]:
    return {
        "bus_id": bus_id,
        "metrics": calculate_route_metrics(positions, speed_limit_mph=speed_limit_mph).model_dump(),
        "total_positions": len(positions),
        "total_student_events": len(student_events),
        "playback_data": build_timeline(positions, student_events),
    }
