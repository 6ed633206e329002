"""Mapbox Directions client (paid; requires `MAPBOX_ACCESS_TOKEN`)."""

from __future__ import annotations

import logging
from typing import Any

from schoolbus.config.settings import Settings
from schoolbus.core.geo import Coordinate
from schoolbus.core.http import get_json
from schoolbus.ingestion.osrm_client import format_coordinates
from schoolbus.routing.models import RouteLeg, RoutingBackendError, RoutingProvider

logger = logging.getLogger(__name__)


class MapboxDirectionsClient:
    provider = RoutingProvider.MAPBOX

    def __init__(self, settings: Settings):
        self._settings = settings

    def _fetch_directions(self, origin: Coordinate, destination: Coordinate) -> dict[str, Any]:
        cfg = self._settings.routing.mapbox
        if not cfg.access_token:
            raise RoutingBackendError(
                "Mapbox access token not configured. Set MAPBOX_ACCESS_TOKEN or use the free OSRM provider."
            )
        logger.debug("Requesting Mapbox directions %s -> %s", origin, destination)
        url = f"{cfg.base_url.rstrip('/')}/{format_coordinates([origin, destination])}"
        params = {
            "access_token": cfg.access_token,
            "annotations": "duration,distance",
            "overview": "full",
            "geometries": "geojson",
        }
        return get_json(url, params=params, timeout_seconds=self._settings.app.http_timeout_seconds)

    def route(self, origin: Coordinate, destination: Coordinate) -> RouteLeg:
        data = self._fetch_directions(origin, destination)
        routes = data.get("routes") if isinstance(data, dict) else None
        if not routes:
            raise RoutingBackendError("No route found with Mapbox")

        route = routes[0]
        try:
            duration_seconds = float(route["duration"])
            distance_meters = float(route["distance"])
        except (KeyError, TypeError, ValueError) as exc:
            raise RoutingBackendError("Mapbox route is missing duration/distance.") from exc

        # The driving-traffic profile already folds traffic into the duration.
        return RouteLeg(
            duration_minutes=round(duration_seconds / 60, 1),
            distance_km=round(distance_meters / 1000, 2),
            traffic_factor=1.0,
            polyline=route.get("geometry"),
            provider=self.provider.value,
        )
