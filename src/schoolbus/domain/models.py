"""
Domain models (Pydantic).

These types are the contract between the ETA core and its callers (API, CLI, background
monitors). All of them are per-call values; nothing here persists itself.

JSON field names (`eta_minutes`, `distance_km`, `route_polyline`, ...) match what the
existing school-transport clients already consume.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schoolbus.core.geo import Coordinate
from schoolbus.core.time import ensure_tz


class Position(BaseModel):
    """A bus's recorded GPS fix."""

    model_config = ConfigDict(frozen=True)

    coordinate: Coordinate
    timestamp: datetime
    speed: float | None = None
    heading: float | None = None
    altitude: float | None = None

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        # Trackers often omit the offset; such fixes are UTC.
        return ensure_tz(value)


class RouteStop(BaseModel):
    """One pickup/drop-off point on a route."""

    id: str
    name: str
    coordinate: Coordinate
    sequence: int = 0


class Route(BaseModel):
    """A school route: ordered stops plus the school it terminates at."""

    id: str
    name: str = ""
    stops: list[RouteStop] = Field(default_factory=list)
    school: Coordinate | None = None
    school_name: str | None = None
    estimated_distance_km: float | None = Field(default=None, ge=0)
    estimated_duration_minutes: float | None = Field(default=None, ge=0)
    capacity: int = Field(default=0, ge=0)


class Trip(BaseModel):
    """One run of a route by a bus."""

    id: str
    tenant_id: str
    route: Route | None = None
    bus_id: str | None = None
    status: Literal["scheduled", "in_progress", "completed", "cancelled"] = "scheduled"
    started_at: datetime | None = None
    duration_minutes: float | None = Field(default=None, ge=0)

    @field_validator("started_at")
    @classmethod
    def _aware_started_at(cls, value: datetime | None) -> datetime | None:
        return ensure_tz(value) if value is not None else None


class EtaResult(BaseModel):
    """A successful ETA (possibly from the local fallback estimate)."""

    success: Literal[True] = True
    eta_minutes: float = Field(..., ge=0)
    distance_km: float = Field(..., ge=0)
    traffic_factor: float = Field(1.0, gt=0)
    route_polyline: Any | None = None
    provider: str
    estimated_arrival_time: datetime
    calculated_at: datetime


class EtaError(BaseModel):
    """A request that cannot be answered (no bus location, no stops, ...)."""

    success: Literal[False] = False
    error: str
    eta_minutes: None = None
    calculated_at: datetime


class StopEta(BaseModel):
    """Cumulative ETA to one stop of a trip."""

    stop_id: str
    stop_name: str
    sequence: int
    eta_minutes: float = Field(..., ge=0)
    leg_minutes: float = Field(..., ge=0)
    distance_km: float = Field(..., ge=0)
    estimated_arrival_time: datetime
    coordinates: Coordinate
    provider: str


class RouteEtaResult(BaseModel):
    success: Literal[True] = True
    trip_id: str
    route_id: str
    bus_id: str
    current_location: Coordinate
    etas: list[StopEta]
    calculated_at: datetime


class PriorMetrics(BaseModel):
    """Distance/duration of the current stop ordering, used to report savings."""

    distance_km: float = Field(0, ge=0)
    duration_minutes: float = Field(0, ge=0)


class OptimizationSavings(BaseModel):
    distance_saved_km: float = 0.0
    time_saved_minutes: float = 0.0
    distance_percentage: float = 0.0
    time_percentage: float = 0.0


class OptimizationResult(BaseModel):
    success: bool
    message: str | None = None
    ordered_stops: list[RouteStop] = Field(default_factory=list)
    waypoints: list[dict[str, Any]] = Field(default_factory=list)
    total_distance_km: float = Field(0.0, ge=0)
    estimated_duration_minutes: float = Field(0.0, ge=0)
    savings: OptimizationSavings = Field(default_factory=OptimizationSavings)


class ImprovementSuggestion(BaseModel):
    type: Literal["low_utilization", "over_capacity", "long_duration", "long_distance"]
    message: str
    priority: Literal["low", "medium", "high"]


class StudentEvent(BaseModel):
    """A pickup/drop-off attendance record captured on the bus."""

    student_id: str
    student_name: str
    grade: str | None = None
    event_type: Literal["pickup", "dropoff"]
    timestamp: datetime
    present: bool = True
    location_name: str | None = None
    coordinate: Coordinate | None = None

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        return ensure_tz(value)


class RouteMetrics(BaseModel):
    total_distance_miles: float = 0.0
    total_distance_km: float = 0.0
    duration_minutes: float = 0.0
    duration_seconds: float = 0.0
    max_speed_mph: float = 0.0
    max_speed_kmh: float = 0.0
    avg_speed_mph: float = 0.0
    avg_speed_kmh: float = 0.0
    speeding_events: int = 0
    idle_time_minutes: float = 0.0
    moving_time_minutes: float = 0.0


class EtaRequest(BaseModel):
    """API payload for a single-bus ETA."""

    bus_id: str = Field(..., min_length=1)
    destination: Coordinate
    provider: str | None = None


class OptimizeRequest(BaseModel):
    """API payload for stop ordering."""

    stops: list[RouteStop]
    fixed_destination: Coordinate | None = None
    destination_name: str = "School"
    prior: PriorMetrics | None = None


class PlaybackRequest(BaseModel):
    bus_id: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    student_events: list[StudentEvent] = Field(default_factory=list)
