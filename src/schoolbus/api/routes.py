"""
API routes.

Endpoints (every call is scoped by the `X-Tenant-ID` header):
- POST   `/api/tracking/{bus_id}/positions`: record a GPS fix.
- POST   `/api/eta`: ETA for one bus to a destination.
- DELETE `/api/eta/cache/{bus_id}`: drop one bus's cached ETAs.
- POST   `/api/trips/route-etas`: cumulative ETAs for every stop of a trip.
- GET    `/api/proximity`: is a bus within a radius of a point.
- POST   `/api/routes/optimize`: nearest-neighbour stop ordering.
- POST   `/api/playback/metrics`: playback timeline + metrics for a time window.
- GET    `/api/settings`: public settings (credentials redacted).
- PUT    `/api/tenant/settings`: per-tenant overrides (ETA provider, thresholds, alerts).
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Header, HTTPException

from schoolbus.config.overrides import TenantSettings
from schoolbus.config.settings import get_settings
from schoolbus.core.cache import EtaCache, record_cache_stats
from schoolbus.core.geo import Coordinate
from schoolbus.core.time import ensure_tz
from schoolbus.domain.models import (
    EtaRequest,
    OptimizationResult,
    OptimizeRequest,
    PlaybackRequest,
    Position,
    Trip,
)
from schoolbus.eta.engine import EtaEngine
from schoolbus.ingestion.tracking import InMemoryTrackingStore
from schoolbus.optimization.optimizer import optimize
from schoolbus.playback.metrics import build_playback
from schoolbus.routing.backend import RoutingBackend

router = APIRouter()


@lru_cache
def _store() -> InMemoryTrackingStore:
    return InMemoryTrackingStore()


@lru_cache
def _tenants() -> TenantSettings:
    return TenantSettings(get_settings())


@lru_cache
def _engine() -> EtaEngine:
    settings = get_settings()
    return EtaEngine(
        settings,
        locations=_store(),
        routing=RoutingBackend(settings),
        cache=EtaCache(ttl_seconds=settings.eta.cache_ttl_seconds),
        tenants=_tenants(),
    )


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=400, detail={"code": "VALIDATION_ERROR", "message": str(exc)})


@router.post("/api/tracking/{bus_id}/positions", status_code=201)
def post_position(bus_id: str, position: Position, x_tenant_id: str = Header(...)) -> dict:
    """Record one GPS fix for a bus (naive timestamps are taken as UTC)."""
    _store().record(x_tenant_id, bus_id, position)
    return {"bus_id": bus_id, "recorded": True}


@router.post("/api/eta")
def post_eta(request: EtaRequest, x_tenant_id: str = Header(...)) -> dict:
    """Return an ETA result (or a tagged error) for one bus."""
    with record_cache_stats() as stats:
        result = _engine().calculate_bus_eta(
            x_tenant_id, request.bus_id, request.destination, provider=request.provider
        )
    payload = result.model_dump(mode="json")
    payload["meta"] = {"cache": stats.as_dict()}
    return payload


@router.delete("/api/eta/cache/{bus_id}")
def delete_eta_cache(bus_id: str, x_tenant_id: str = Header(...)) -> dict:
    return {"bus_id": bus_id, "evicted": _engine().clear_eta_cache(x_tenant_id, bus_id)}


@router.post("/api/trips/route-etas")
def post_route_etas(trip: Trip, provider: str | None = None, x_tenant_id: str = Header(...)) -> dict:
    """Cumulative per-stop ETAs; the trip is always evaluated in the caller's tenant."""
    scoped = trip.model_copy(update={"tenant_id": x_tenant_id})
    result = _engine().calculate_route_etas(scoped, provider=provider)
    return result.model_dump(mode="json")


@router.get("/api/proximity")
def get_proximity(
    bus_id: str,
    lat: float,
    lon: float,
    threshold_km: float | None = None,
    x_tenant_id: str = Header(...),
) -> dict:
    try:
        point = Coordinate(lat=lat, lon=lon)
        near = _engine().is_bus_near_stop(x_tenant_id, bus_id, point, threshold_km)
    except ValueError as e:
        raise _bad_request(e) from e
    return {"bus_id": bus_id, "near": near}


@router.post("/api/routes/optimize", response_model=OptimizationResult)
def post_optimize(request: OptimizeRequest, x_tenant_id: str = Header(...)) -> OptimizationResult:
    cfg = _engine().settings_for(x_tenant_id).optimization
    return optimize(
        request.stops,
        request.fixed_destination,
        request.prior,
        destination_name=request.destination_name,
        speed_kmh=cfg.average_speed_kmh,
        dwell_minutes=cfg.dwell_minutes_per_stop,
    )


@router.post("/api/playback/metrics")
def post_playback(request: PlaybackRequest, x_tenant_id: str = Header(...)) -> dict:
    start = ensure_tz(request.start)
    end = ensure_tz(request.end)
    if end <= start:
        raise _bad_request(ValueError("end must be after start"))
    positions = _store().positions_between(x_tenant_id, request.bus_id, start, end)
    settings = _engine().settings_for(x_tenant_id)
    return build_playback(
        request.bus_id,
        positions,
        request.student_events,
        speed_limit_mph=settings.playback.speed_limit_mph,
    )


@router.get("/api/settings")
def get_public_settings(x_tenant_id: str | None = Header(default=None)) -> dict:
    """Return safe-to-expose settings for UI defaults (credentials removed)."""
    data = _engine().settings_for(x_tenant_id).model_dump(mode="json")
    data["routing"]["google"].pop("api_key", None)
    data["routing"]["mapbox"].pop("access_token", None)
    return data


@router.put("/api/tenant/settings")
def put_tenant_settings(overrides: dict[str, Any], x_tenant_id: str = Header(...)) -> dict:
    """Store this tenant's setting overrides (whitelisted knobs only)."""
    try:
        _tenants().set_overrides(x_tenant_id, overrides)
    except ValueError as e:
        raise _bad_request(e) from e
    return get_public_settings(x_tenant_id)
