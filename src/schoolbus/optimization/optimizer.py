"""
Route stop ordering (nearest-neighbour heuristic).

`optimize` orders pickup stops greedily: start from the first stop as given, then keep
driving to the closest unvisited stop. The school (a fixed destination) is appended last
whatever its position. This is a heuristic, not an optimal TSP solver: it is fast,
deterministic and usually good enough for a few dozen stops, but it can produce tours
noticeably longer than the optimum.

Ties go to the stop that appears first among the remaining ones, so the same input always
yields the same order.

The result is advisory; the caller decides whether to persist the new `sequence` values.
"""

from __future__ import annotations

from typing import Sequence

from schoolbus.core.geo import Coordinate, haversine_km, travel_minutes
from schoolbus.domain.models import (
    ImprovementSuggestion,
    OptimizationResult,
    OptimizationSavings,
    PriorMetrics,
    Route,
    RouteStop,
)

DEFAULT_SPEED_KMH = 30.0
DEFAULT_DWELL_MINUTES = 2.0
DESTINATION_STOP_ID = "school"


def nearest_neighbor_order(stops: Sequence[RouteStop]) -> list[RouteStop]:
    if not stops:
        return []

    remaining = list(stops)
    current = remaining.pop(0)
    ordered = [current]

    while remaining:
        nearest_index = 0
        nearest_distance = float("inf")
        for index, stop in enumerate(remaining):
            distance = haversine_km(current.coordinate, stop.coordinate)
            # Strict `<` keeps the earliest candidate on ties.
            if distance < nearest_distance:
                nearest_distance = distance
                nearest_index = index
        current = remaining.pop(nearest_index)
        ordered.append(current)

    return ordered


def total_distance_km(points: Sequence[Coordinate]) -> float:
    return sum(haversine_km(a, b) for a, b in zip(points, points[1:]))


def estimate_duration_minutes(
    distance_km: float,
    stop_count: int,
    *,
    speed_kmh: float = DEFAULT_SPEED_KMH,
    dwell_minutes: float = DEFAULT_DWELL_MINUTES,
) -> int:
    """Driving time plus boarding/alighting time at every stop after the first."""
    travel = travel_minutes(distance_km, speed_kmh)
    dwell = max(0, stop_count - 1) * dwell_minutes
    return round(travel + dwell)


def calculate_savings(
    prior: PriorMetrics | None, new_distance_km: float, new_duration_minutes: float
) -> OptimizationSavings:
    if prior is None:
        return OptimizationSavings()

    old_distance = float(prior.distance_km)
    old_duration = float(prior.duration_minutes)
    return OptimizationSavings(
        distance_saved_km=round(old_distance - new_distance_km, 2),
        time_saved_minutes=round(old_duration - new_duration_minutes, 1),
        distance_percentage=(
            round((old_distance - new_distance_km) / old_distance * 100, 1) if old_distance > 0 else 0.0
        ),
        time_percentage=(
            round((old_duration - new_duration_minutes) / old_duration * 100, 1) if old_duration > 0 else 0.0
        ),
    )


def optimize(
    stops: Sequence[RouteStop],
    fixed_destination: Coordinate | None = None,
    prior: PriorMetrics | None = None,
    *,
    destination_name: str = "School",
    speed_kmh: float = DEFAULT_SPEED_KMH,
    dwell_minutes: float = DEFAULT_DWELL_MINUTES,
) -> OptimizationResult:
    """Order `stops` by nearest neighbour and report distance, duration and savings."""
    if not stops:
        return OptimizationResult(success=False, message="No stops to optimize")

    ordered = nearest_neighbor_order(stops)
    if fixed_destination is not None:
        ordered.append(
            RouteStop(id=DESTINATION_STOP_ID, name=destination_name, coordinate=fixed_destination)
        )

    resequenced = [stop.model_copy(update={"sequence": i}) for i, stop in enumerate(ordered, start=1)]

    distance = total_distance_km([s.coordinate for s in resequenced])
    duration = estimate_duration_minutes(
        distance, len(resequenced), speed_kmh=speed_kmh, dwell_minutes=dwell_minutes
    )

    return OptimizationResult(
        success=True,
        ordered_stops=resequenced,
        waypoints=[{"lat": s.coordinate.lat, "lng": s.coordinate.lon, "name": s.name} for s in resequenced],
        total_distance_km=round(distance, 2),
        estimated_duration_minutes=duration,
        savings=calculate_savings(prior, distance, duration),
    )


def optimize_route(route: Route, **kwargs) -> OptimizationResult:
    """Optimize a stored route, comparing against its current estimates."""
    prior = None
    if route.estimated_distance_km is not None or route.estimated_duration_minutes is not None:
        prior = PriorMetrics(
            distance_km=route.estimated_distance_km or 0,
            duration_minutes=route.estimated_duration_minutes or 0,
        )
    return optimize(
        route.stops,
        route.school,
        prior,
        destination_name=route.school_name or route.name or "School",
        **kwargs,
    )


def efficiency_score(route: Route, active_assignments: int) -> float:
    """0-100 score: seat utilization (40), riders per km (30), shortness (30)."""
    if active_assignments <= 0:
        return 0.0

    utilization = (active_assignments / route.capacity) * 40 if route.capacity > 0 else 0.0

    distance = route.estimated_distance_km or 0
    distance_efficiency = min(active_assignments / distance * 30, 30) if distance > 0 else 0.0

    duration = route.estimated_duration_minutes or 0
    time_efficiency = min(60 / duration * 30, 30) if duration > 0 else 0.0

    return round(utilization + distance_efficiency + time_efficiency, 1)


def suggest_improvements(route: Route, active_assignments: int) -> list[ImprovementSuggestion]:
    suggestions: list[ImprovementSuggestion] = []
    utilization = (active_assignments / route.capacity) * 100 if route.capacity > 0 else 0.0

    if utilization < 50:
        suggestions.append(
            ImprovementSuggestion(
                type="low_utilization",
                message="Route utilization is below 50%. Consider consolidating with another route.",
                priority="medium",
            )
        )
    if utilization > 95:
        suggestions.append(
            ImprovementSuggestion(
                type="over_capacity",
                message="Route is near capacity. Consider splitting into two routes.",
                priority="high",
            )
        )
    if (route.estimated_duration_minutes or 0) > 90:
        suggestions.append(
            ImprovementSuggestion(
                type="long_duration",
                message="Route duration exceeds 90 minutes. Students may experience fatigue.",
                priority="medium",
            )
        )
    if (route.estimated_distance_km or 0) > 50:
        suggestions.append(
            ImprovementSuggestion(
                type="long_distance",
                message="Route distance is quite long. Review for optimization opportunities.",
                priority="low",
            )
        )
    return suggestions
