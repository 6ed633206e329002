"""Shared types for routing-provider clients and the routing backend."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class RoutingProvider(str, Enum):
    OSRM = "osrm"
    GOOGLE = "google"
    MAPBOX = "mapbox"


HAVERSINE_FALLBACK = "haversine_fallback"


class RoutingBackendError(RuntimeError):
    """A routing provider could not answer (timeout, HTTP error, bad payload, no route)."""


@dataclass(frozen=True)
class RouteLeg:
    """Travel time/distance between two points as reported by one provider."""

    duration_minutes: float
    distance_km: float
    provider: str
    traffic_factor: float = 1.0
    polyline: Any | None = None

    def __post_init__(self) -> None:
        if self.duration_minutes < 0 or self.distance_km < 0:
            raise RoutingBackendError(
                f"negative route metrics from {self.provider}: "
                f"{self.duration_minutes}min / {self.distance_km}km"
            )
