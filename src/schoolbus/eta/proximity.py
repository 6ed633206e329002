"""
Proximity (geofence) checks: is a bus within `threshold_km` of a point?

Used by the ETA engine and directly by geofence-style alert triggers. A bus without a
recent fix is treated as "not near".
"""

from __future__ import annotations

from schoolbus.core.geo import Coordinate, haversine_km
from schoolbus.ingestion.tracking import DEFAULT_MAX_AGE_MINUTES, LocationProvider

DEFAULT_THRESHOLD_KM = 0.5


class ProximityChecker:
    def __init__(self, locations: LocationProvider, *, max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES):
        self._locations = locations
        self._max_age_minutes = float(max_age_minutes)

    def distance_to(
        self,
        tenant_id: str,
        bus_id: str,
        point: Coordinate,
        *,
        max_age_minutes: float | None = None,
    ) -> float | None:
        """Kilometres from the bus's current fix to `point`, or None without a fix."""
        max_age = self._max_age_minutes if max_age_minutes is None else float(max_age_minutes)
        position = self._locations.get_current_position(tenant_id, bus_id, max_age)
        if position is None:
            return None
        return haversine_km(position.coordinate, point)

    def is_near(
        self,
        tenant_id: str,
        bus_id: str,
        point: Coordinate,
        threshold_km: float = DEFAULT_THRESHOLD_KM,
        *,
        max_age_minutes: float | None = None,
    ) -> bool:
        if threshold_km < 0:
            raise ValueError("threshold_km must be >= 0")
        distance = self.distance_to(tenant_id, bus_id, point, max_age_minutes=max_age_minutes)
        if distance is None:
            return False
        return distance <= threshold_km
