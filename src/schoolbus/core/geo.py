from __future__ import annotations

import math
from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

"""
Geospatial helpers.

A tiny geometry layer shared by the ETA engine, the proximity checker, the route
optimizer and playback metrics, so none of them needs a GIS dependency.

Coordinates are validated on construction; `haversine_distance` therefore assumes its
inputs are in range and never raises.
"""

EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_MI = 3959.0
KM_PER_MILE = 1.60934


class InvalidCoordinate(ValueError):
    """Raised when a latitude/longitude pair is outside the valid range."""


@dataclass(frozen=True)
class Coordinate:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        lat = float(self.lat)
        lon = float(self.lon)
        if not (math.isfinite(lat) and -90.0 <= lat <= 90.0):
            raise InvalidCoordinate(f"latitude {self.lat!r} is outside [-90, 90]")
        if not (math.isfinite(lon) and -180.0 <= lon <= 180.0):
            raise InvalidCoordinate(f"longitude {self.lon!r} is outside [-180, 180]")
        object.__setattr__(self, "lat", lat)
        object.__setattr__(self, "lon", lon)

    @classmethod
    def parse(cls, value: str) -> "Coordinate":
        """Parse a `"lat,lon"` string (CLI/query-string form)."""
        parts = [p.strip() for p in str(value).split(",")]
        if len(parts) != 2:
            raise InvalidCoordinate(f"expected 'lat,lon', got {value!r}")
        try:
            return cls(lat=float(parts[0]), lon=float(parts[1]))
        except (TypeError, ValueError) as exc:
            if isinstance(exc, InvalidCoordinate):
                raise
            raise InvalidCoordinate(f"expected 'lat,lon', got {value!r}") from exc

    def as_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lon}


def haversine_distance(a: Coordinate, b: Coordinate, *, radius: float = EARTH_RADIUS_KM) -> float:
    """Great-circle distance between `a` and `b` in the unit of `radius`."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair above 1 for antipodal points.
    return 2 * radius * asin(sqrt(min(1.0, h)))


def haversine_km(a: Coordinate, b: Coordinate) -> float:
    return haversine_distance(a, b, radius=EARTH_RADIUS_KM)


def haversine_mi(a: Coordinate, b: Coordinate) -> float:
    return haversine_distance(a, b, radius=EARTH_RADIUS_MI)


def km_to_miles(km: float) -> float:
    return float(km) / KM_PER_MILE


def miles_to_km(miles: float) -> float:
    return float(miles) * KM_PER_MILE


def mps_to_kmh(mps: float) -> float:
    return float(mps) * 3.6


def kmh_to_mps(kmh: float) -> float:
    return float(kmh) / 3.6


def travel_minutes(distance_km: float, speed_kmh: float) -> float:
    """Minutes needed to cover `distance_km` at a constant `speed_kmh`."""
    if speed_kmh <= 0:
        raise ValueError("speed_kmh must be > 0")
    return max(0.0, float(distance_km)) / float(speed_kmh) * 60.0
