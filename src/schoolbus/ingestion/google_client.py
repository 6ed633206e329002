"""
Google Distance Matrix client (paid; requires `GOOGLE_MAPS_API_KEY`).

Google is the only provider here that reports live traffic: the traffic factor is
`duration_in_traffic / duration` when the response carries both.
"""

from __future__ import annotations

import logging
from typing import Any

from schoolbus.config.settings import Settings
from schoolbus.core.geo import Coordinate
from schoolbus.core.http import get_json
from schoolbus.routing.models import RouteLeg, RoutingBackendError, RoutingProvider

logger = logging.getLogger(__name__)


class GoogleDistanceMatrixClient:
    provider = RoutingProvider.GOOGLE

    def __init__(self, settings: Settings):
        self._settings = settings

    def _require_api_key(self) -> str:
        api_key = self._settings.routing.google.api_key
        if not api_key:
            raise RoutingBackendError(
                "Google Maps API key not configured. Set GOOGLE_MAPS_API_KEY or use the free OSRM provider."
            )
        return api_key

    def _fetch_matrix(self, origin: Coordinate, destination: Coordinate) -> dict[str, Any]:
        cfg = self._settings.routing.google
        logger.debug("Requesting Google distance matrix %s -> %s", origin, destination)
        params = {
            "origins": f"{origin.lat},{origin.lon}",
            "destinations": f"{destination.lat},{destination.lon}",
            "departure_time": "now",
            "traffic_model": cfg.traffic_model,
            "mode": "driving",
            "units": "metric",
            "key": self._require_api_key(),
        }
        return get_json(cfg.base_url, params=params, timeout_seconds=self._settings.app.http_timeout_seconds)

    def route(self, origin: Coordinate, destination: Coordinate) -> RouteLeg:
        data = self._fetch_matrix(origin, destination)
        if not isinstance(data, dict) or data.get("status") != "OK":
            status = data.get("status") if isinstance(data, dict) else None
            raise RoutingBackendError(f"Google Maps API error: {status}")

        try:
            element = data["rows"][0]["elements"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise RoutingBackendError("Google Maps response has no matrix element.") from exc

        if element.get("status") != "OK":
            raise RoutingBackendError(f"Route calculation failed: {element.get('status')}")

        try:
            base_seconds = float(element["duration"]["value"])
            distance_meters = float(element["distance"]["value"])
            in_traffic = element.get("duration_in_traffic")
            traffic_seconds = float(in_traffic["value"]) if in_traffic else base_seconds
        except (KeyError, TypeError, ValueError) as exc:
            raise RoutingBackendError("Google Maps element is missing duration/distance.") from exc

        traffic_factor = traffic_seconds / base_seconds if in_traffic and base_seconds > 0 else 1.0

        return RouteLeg(
            duration_minutes=round(traffic_seconds / 60, 1),
            distance_km=round(distance_meters / 1000, 2),
            traffic_factor=round(traffic_factor, 2),
            polyline=None,
            provider=self.provider.value,
        )
