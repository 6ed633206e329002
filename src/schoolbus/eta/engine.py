"""
ETA engine.

Orchestrates the location provider, the routing backend and the ETA cache to answer:
- "ETA for bus X to point Y" (`calculate_bus_eta`)
- "ETA to every stop of this trip, in order" (`calculate_route_etas`)
- "is bus X near point Y" (`is_bus_near_stop`)

Every public call takes an explicit `tenant_id` (directly or via the trip) and returns a
tagged result. Runtime failures are logged and turned into `EtaError`; they never escape
to the caller. Provider failures never even get that far: the routing backend answers
them with a haversine estimate.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Protocol

from schoolbus.config.overrides import TenantSettings
from schoolbus.config.settings import Settings
from schoolbus.core.cache import EtaCache
from schoolbus.core.geo import Coordinate
from schoolbus.core.time import utcnow
from schoolbus.domain.models import EtaError, EtaResult, RouteEtaResult, StopEta, Trip
from schoolbus.eta.proximity import ProximityChecker
from schoolbus.ingestion.tracking import LocationProvider
from schoolbus.routing.backend import RoutingBackend
from schoolbus.routing.models import RoutingProvider

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


def eta_channels(
    tenant_id: str,
    *,
    bus_id: str | None = None,
    route_id: str | None = None,
    trip_id: str | None = None,
) -> list[str]:
    """Pub/sub channel names an ETA update is broadcast on."""
    channels = [
        f"company.{tenant_id}.school-transport",
        f"company.{tenant_id}.eta-updates",
    ]
    if bus_id:
        channels.append(f"company.{tenant_id}.bus.{bus_id}.eta")
    if route_id:
        channels.append(f"company.{tenant_id}.route.{route_id}.eta")
    if trip_id:
        channels.append(f"company.{tenant_id}.trip.{trip_id}.eta")
    return channels


class EtaEngine:
    def __init__(
        self,
        settings: Settings,
        *,
        locations: LocationProvider,
        routing: RoutingBackend | None = None,
        cache: EtaCache | None = None,
        tenants: TenantSettings | None = None,
        publisher: EventPublisher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self._locations = locations
        self._routing = routing or RoutingBackend(settings)
        self._cache = cache or EtaCache(ttl_seconds=settings.eta.cache_ttl_seconds)
        self._tenants = tenants
        self._publisher = publisher
        self._clock = clock

    def settings_for(self, tenant_id: str | None) -> Settings:
        if self._tenants is None:
            return self._settings
        return self._tenants.for_tenant(tenant_id)

    def _error(self, message: str) -> EtaError:
        return EtaError(error=message, calculated_at=self._clock())

    def _compute_leg(
        self,
        settings: Settings,
        origin: Coordinate,
        destination: Coordinate,
        provider: str | RoutingProvider | None,
    ):
        return self._routing.compute_route(
            origin,
            destination,
            provider,
            default_provider=settings.routing.default_provider,
            fallback_speed_kmh=settings.routing.fallback_speed_kmh,
        )

    def calculate_bus_eta(
        self,
        tenant_id: str,
        bus_id: str,
        destination: Coordinate,
        provider: str | RoutingProvider | None = None,
    ) -> EtaResult | EtaError:
        """ETA for one bus from its latest fix to `destination`."""
        try:
            settings = self.settings_for(tenant_id)
            position = self._locations.get_current_position(
                tenant_id, bus_id, settings.eta.max_location_age_minutes
            )
            if position is None:
                return self._error("Bus location not available")

            leg = self._compute_leg(settings, position.coordinate, destination, provider)
            now = self._clock()
            result = EtaResult(
                eta_minutes=leg.duration_minutes,
                distance_km=leg.distance_km,
                traffic_factor=leg.traffic_factor,
                route_polyline=leg.polyline,
                provider=leg.provider,
                estimated_arrival_time=now + timedelta(minutes=leg.duration_minutes),
                calculated_at=now,
            )
            # Fallback answers are cached too; they are valid, only less precise.
            self._cache.put(tenant_id, bus_id, destination, result, ttl_seconds=settings.eta.cache_ttl_seconds)
            return result
        except Exception as exc:
            logger.error(
                "ETA calculation failed for bus=%s tenant=%s destination=%s",
                bus_id,
                tenant_id,
                destination,
                exc_info=True,
            )
            return self._error(f"ETA calculation failed: {exc}")

    def get_cached_eta(self, tenant_id: str, bus_id: str, destination: Coordinate) -> EtaResult | None:
        cached = self._cache.get(tenant_id, bus_id, destination)
        return cached if isinstance(cached, EtaResult) else None

    def clear_eta_cache(self, tenant_id: str, bus_id: str) -> int:
        """Evict only this bus's cached ETAs."""
        removed = self._cache.evict_bus(tenant_id, bus_id)
        logger.debug("Evicted %s cached ETAs for bus=%s tenant=%s", removed, bus_id, tenant_id)
        return removed

    def calculate_route_etas(
        self, trip: Trip, provider: str | RoutingProvider | None = None
    ) -> RouteEtaResult | EtaError:
        """Cumulative ETAs to every stop of the trip's route, in stop order.

        The first leg starts at the bus's live position; each later leg starts at the
        previous stop, modelling the bus driving the route in sequence. Legs are computed
        one after another and never in parallel.
        """
        try:
            route = trip.route
            if route is None:
                return self._error("Route or stops not found")
            if not route.stops:
                return self._error("Route has no stops defined")
            if not trip.bus_id:
                return self._error("Bus not found for trip")

            settings = self.settings_for(trip.tenant_id)
            position = self._locations.get_current_position(
                trip.tenant_id, trip.bus_id, settings.eta.max_location_age_minutes
            )
            if position is None:
                return self._error("Bus location not available")

            now = self._clock()
            origin = position.coordinate
            arrival = now
            cumulative = 0.0
            etas: list[StopEta] = []
            for index, stop in enumerate(sorted(route.stops, key=lambda s: s.sequence), start=1):
                leg = self._compute_leg(settings, origin, stop.coordinate, provider)
                cumulative += leg.duration_minutes
                arrival = arrival + timedelta(minutes=leg.duration_minutes)
                etas.append(
                    StopEta(
                        stop_id=stop.id,
                        stop_name=stop.name,
                        sequence=index,
                        eta_minutes=round(cumulative, 1),
                        leg_minutes=leg.duration_minutes,
                        distance_km=leg.distance_km,
                        estimated_arrival_time=arrival,
                        coordinates=stop.coordinate,
                        provider=leg.provider,
                    )
                )
                origin = stop.coordinate

            return RouteEtaResult(
                trip_id=trip.id,
                route_id=route.id,
                bus_id=trip.bus_id,
                current_location=position.coordinate,
                etas=etas,
                calculated_at=now,
            )
        except Exception as exc:
            logger.error("Route ETA calculation failed for trip=%s", trip.id, exc_info=True)
            return self._error(f"Route ETA calculation failed: {exc}")

    def is_bus_near_stop(
        self,
        tenant_id: str,
        bus_id: str,
        stop: Coordinate,
        threshold_km: float | None = None,
    ) -> bool:
        settings = self.settings_for(tenant_id)
        threshold = settings.eta.proximity_threshold_km if threshold_km is None else float(threshold_km)
        checker = ProximityChecker(self._locations, max_age_minutes=settings.eta.max_location_age_minutes)
        return checker.is_near(tenant_id, bus_id, stop, threshold)

    def broadcast_eta_update(self, tenant_id: str, payload: dict[str, Any]) -> list[str]:
        """Publish an ETA payload on the tenant's channels; returns the channel names used."""
        channels = eta_channels(
            tenant_id,
            bus_id=payload.get("bus_id"),
            route_id=payload.get("route_id"),
            trip_id=payload.get("trip_id"),
        )
        if self._publisher is None:
            return channels
        for channel in channels:
            try:
                self._publisher.publish(channel, payload)
            except Exception:
                logger.warning("Failed to publish ETA update on %s", channel, exc_info=True)
        return channels
