"""
Routing backend adapter.

`RoutingBackend.compute_route` is the single entry point the ETA engine uses to turn two
coordinates into travel time and distance. It dispatches to a named provider client
(OSRM by default, Google or Mapbox when configured) and, on any failure, answers with a
local haversine estimate instead. Callers therefore always receive a usable `RouteLeg`.

Rules:
- One attempt per provider call, no retries. The HTTP timeout bounds the wait.
- Unknown provider names are logged and served by the default provider.
- Missing credentials and an exhausted per-minute budget both go straight to the fallback.
"""

from __future__ import annotations

import logging
from typing import Protocol

from schoolbus.config.settings import Settings
from schoolbus.core.geo import Coordinate, haversine_km, travel_minutes
from schoolbus.core.rate_limit import TokenBucketRateLimiter
from schoolbus.ingestion.google_client import GoogleDistanceMatrixClient
from schoolbus.ingestion.mapbox_client import MapboxDirectionsClient
from schoolbus.ingestion.osrm_client import OsrmClient
from schoolbus.routing.models import HAVERSINE_FALLBACK, RouteLeg, RoutingProvider

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_SPEED_KMH = 30.0


class RoutingClient(Protocol):
    def route(self, origin: Coordinate, destination: Coordinate) -> RouteLeg: ...


def haversine_estimate(
    origin: Coordinate, destination: Coordinate, *, speed_kmh: float = DEFAULT_FALLBACK_SPEED_KMH
) -> RouteLeg:
    """Straight-line distance driven at a constant urban school-bus speed."""
    distance_km = haversine_km(origin, destination)
    return RouteLeg(
        duration_minutes=round(travel_minutes(distance_km, speed_kmh), 1),
        distance_km=round(distance_km, 2),
        traffic_factor=1.0,
        polyline=None,
        provider=HAVERSINE_FALLBACK,
    )


def resolve_provider(name: str | RoutingProvider | None, default: RoutingProvider) -> RoutingProvider:
    """Map a provider name onto the enum; unknown names resolve to `default`."""
    if name is None or name == "":
        return default
    if isinstance(name, RoutingProvider):
        return name
    try:
        return RoutingProvider(str(name).strip().lower())
    except ValueError:
        logger.warning("Unsupported ETA provider '%s', falling back to %s", name, default.value)
        return default


def build_clients(settings: Settings) -> dict[RoutingProvider, RoutingClient]:
    return {
        RoutingProvider.OSRM: OsrmClient(settings),
        RoutingProvider.GOOGLE: GoogleDistanceMatrixClient(settings),
        RoutingProvider.MAPBOX: MapboxDirectionsClient(settings),
    }


def build_rate_limiters(settings: Settings) -> dict[RoutingProvider, TokenBucketRateLimiter]:
    budgets = {
        RoutingProvider.OSRM: settings.routing.osrm.max_requests_per_minute,
        RoutingProvider.GOOGLE: settings.routing.google.max_requests_per_minute,
        RoutingProvider.MAPBOX: settings.routing.mapbox.max_requests_per_minute,
    }
    # A budget of 0 means "unlimited".
    return {p: TokenBucketRateLimiter(max_per_minute=rpm) for p, rpm in budgets.items() if rpm > 0}


class RoutingBackend:
    """Provider registry plus the degrade-to-haversine contract."""

    def __init__(
        self,
        settings: Settings,
        *,
        clients: dict[RoutingProvider, RoutingClient] | None = None,
        rate_limiters: dict[RoutingProvider, TokenBucketRateLimiter] | None = None,
    ):
        self._settings = settings
        self._clients = clients if clients is not None else build_clients(settings)
        self._limiters = rate_limiters if rate_limiters is not None else build_rate_limiters(settings)

    @property
    def default_provider(self) -> RoutingProvider:
        return RoutingProvider(self._settings.routing.default_provider)

    def register(self, provider: RoutingProvider, client: RoutingClient) -> None:
        self._clients[provider] = client

    def compute_route(
        self,
        origin: Coordinate,
        destination: Coordinate,
        provider: str | RoutingProvider | None = None,
        *,
        default_provider: str | RoutingProvider | None = None,
        fallback_speed_kmh: float | None = None,
    ) -> RouteLeg:
        """Return a `RouteLeg` from `provider`, or the haversine estimate if it cannot answer."""
        default = resolve_provider(default_provider, self.default_provider)
        chosen = resolve_provider(provider, default)
        speed = float(fallback_speed_kmh or self._settings.routing.fallback_speed_kmh)

        client = self._clients.get(chosen)
        if client is None:
            logger.warning("No client registered for provider %s; using haversine estimate", chosen.value)
            return haversine_estimate(origin, destination, speed_kmh=speed)

        limiter = self._limiters.get(chosen)
        if limiter is not None and not limiter.try_acquire():
            logger.warning("Request budget for %s exhausted; using haversine estimate", chosen.value)
            return haversine_estimate(origin, destination, speed_kmh=speed)

        try:
            return client.route(origin, destination)
        except Exception as exc:
            # RoutingBackendError, httpx.HTTPError and JSON decoding errors all land here.
            logger.warning(
                "%s ETA calculation failed (%s -> %s): %s; using haversine estimate",
                chosen.value,
                origin,
                destination,
                exc,
            )
            return haversine_estimate(origin, destination, speed_kmh=speed)
