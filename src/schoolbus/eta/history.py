"""Historical ETA estimate from completed trips of the same route."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from schoolbus.core.time import ensure_tz, utcnow
from schoolbus.domain.models import Trip


def time_to_stop_minutes(trip: Trip, stop_index: int, total_stops: int) -> float | None:
    """Share of the trip's duration proportional to the stop's position on the route.

    Per-stop arrival times are not recorded, so the total duration is split evenly.
    """
    if trip.started_at is None or not trip.duration_minutes or total_stops <= 0:
        return None
    return (stop_index / total_stops) * float(trip.duration_minutes)


def historical_eta_minutes(
    trips: Iterable[Trip],
    stop_index: int,
    *,
    route_id: str | None = None,
    lookback_days: int = 30,
    now: datetime | None = None,
) -> int | None:
    """Mean minutes from trip start to stop `stop_index` over recent completed trips."""
    cutoff = ensure_tz(now or utcnow()) - timedelta(days=lookback_days)
    samples: list[float] = []
    for trip in trips:
        if trip.status != "completed" or trip.route is None:
            continue
        if route_id is not None and trip.route.id != route_id:
            continue
        if trip.started_at is not None and trip.started_at < cutoff:
            continue
        minutes = time_to_stop_minutes(trip, stop_index, len(trip.route.stops))
        if minutes:
            samples.append(minutes)
    if not samples:
        return None
    return round(sum(samples) / len(samples))
