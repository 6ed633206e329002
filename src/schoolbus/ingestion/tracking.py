"""
Bus location source.

The GPS/tracking ingestion pipeline lives outside this package. The ETA engine only needs
"latest position for bus X of tenant T within N minutes", expressed by the
`LocationProvider` protocol. `InMemoryTrackingStore` is the in-process implementation used
by the API, the CLI demos and the tests.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Iterable, Protocol

from schoolbus.core.time import ensure_tz, utcnow
from schoolbus.domain.models import Position

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_MINUTES = 60.0


class LocationProvider(Protocol):
    def get_current_position(
        self, tenant_id: str, bus_id: str, max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES
    ) -> Position | None:
        """Return the newest fix no older than `max_age_minutes`, or None (unavailable)."""
        ...


class InMemoryTrackingStore:
    """Thread-safe position log keyed by (tenant_id, bus_id)."""

    def __init__(self, *, clock=utcnow):
        self._clock = clock
        self._positions: dict[tuple[str, str], list[Position]] = {}
        self._lock = threading.Lock()

    def record(self, tenant_id: str, bus_id: str, position: Position) -> None:
        """Append one fix (`Position` has already normalized its timestamp to aware)."""
        with self._lock:
            self._positions.setdefault((tenant_id, bus_id), []).append(position)

    def record_many(self, tenant_id: str, bus_id: str, positions: Iterable[Position]) -> None:
        for p in positions:
            self.record(tenant_id, bus_id, p)

    def get_current_position(
        self, tenant_id: str, bus_id: str, max_age_minutes: float = DEFAULT_MAX_AGE_MINUTES
    ) -> Position | None:
        with self._lock:
            history = list(self._positions.get((tenant_id, bus_id), ()))
        if not history:
            return None

        latest = max(history, key=lambda p: p.timestamp)
        age = self._clock() - latest.timestamp
        if age > timedelta(minutes=float(max_age_minutes)):
            logger.debug(
                "Latest fix for bus=%s tenant=%s is stale (age=%s, max=%smin)",
                bus_id,
                tenant_id,
                age,
                max_age_minutes,
            )
            return None
        return latest

    def positions_between(
        self, tenant_id: str, bus_id: str, start: datetime, end: datetime
    ) -> list[Position]:
        """Return fixes with `start <= timestamp <= end`, oldest first."""
        start = ensure_tz(start)
        end = ensure_tz(end)
        with self._lock:
            history = list(self._positions.get((tenant_id, bus_id), ()))
        return sorted((p for p in history if start <= p.timestamp <= end), key=lambda p: p.timestamp)
