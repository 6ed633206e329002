"""
OSRM routing client (free, OpenStreetMap based).

Sole responsibility: talk to an OSRM `/route` endpoint over HTTP and normalize the answer
into a `RouteLeg`. It does not decide what happens on failure; the routing backend falls
back to a local estimate when this client raises.
"""

from __future__ import annotations

import logging
from typing import Any

from schoolbus.config.settings import Settings
from schoolbus.core.geo import Coordinate
from schoolbus.core.http import get_json
from schoolbus.routing.models import RouteLeg, RoutingBackendError, RoutingProvider

logger = logging.getLogger(__name__)


def format_coordinates(coords: list[Coordinate]) -> str:
    """OSRM wants `lon,lat;lon,lat`."""
    return ";".join(f"{c.lon},{c.lat}" for c in coords)


class OsrmClient:
    provider = RoutingProvider.OSRM

    def __init__(self, settings: Settings):
        self._settings = settings

    def _fetch_route(self, origin: Coordinate, destination: Coordinate) -> dict[str, Any]:
        cfg = self._settings.routing.osrm
        logger.debug("Requesting OSRM route %s -> %s", origin, destination)
        if not cfg.base_url:
            raise RoutingBackendError("OSRM base URL is not configured.")
        url = f"{cfg.base_url.rstrip('/')}/route/v1/{cfg.profile}/{format_coordinates([origin, destination])}"
        return get_json(
            url,
            params={"overview": "full", "geometries": "geojson", "steps": "false"},
            timeout_seconds=self._settings.app.http_timeout_seconds,
        )

    def route(self, origin: Coordinate, destination: Coordinate) -> RouteLeg:
        data = self._fetch_route(origin, destination)
        if not isinstance(data, dict):
            raise RoutingBackendError("OSRM returned a non-object payload.")
        if data.get("code") not in (None, "Ok"):
            raise RoutingBackendError(f"OSRM error: {data.get('message') or data.get('code')}")

        routes = data.get("routes") or []
        if not routes:
            raise RoutingBackendError("No route found with OSRM")

        route = routes[0]
        try:
            duration_seconds = float(route.get("duration") or 0)
            distance_meters = float(route.get("distance") or 0)
        except (TypeError, ValueError) as exc:
            raise RoutingBackendError("OSRM route is missing duration/distance.") from exc

        # OSRM has no live traffic.
        return RouteLeg(
            duration_minutes=round(duration_seconds / 60, 1),
            distance_km=round(distance_meters / 1000, 2),
            traffic_factor=1.0,
            polyline=route.get("geometry"),
            provider=self.provider.value,
        )
