"""
JSON fixture loaders.

Routes, stop lists and GPS trails can be exported from the fleet platform as JSON files.
We validate them into typed Pydantic models so the CLI and offline tools can assume a
consistent shape.

Accepted shapes:
- stops: `[{"id", "name", "coordinate": {"lat", "lon"}, "sequence"?}, ...]`
- routes: `[{"id", "name", "stops": [...], "school": {...}?, ...}, ...]` or a single object
- positions: `[{"coordinate": {...}, "timestamp", "speed"?, ...}, ...]`
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter

from schoolbus.core.env import resolve_project_path
from schoolbus.domain.models import Position, Route, RouteStop

_STOPS_ADAPTER = TypeAdapter(list[RouteStop])
_ROUTES_ADAPTER = TypeAdapter(list[Route])
_POSITIONS_ADAPTER = TypeAdapter(list[Position])


def _read_json(path: str | Path) -> Any:
    resolved = resolve_project_path(path)
    return json.loads(resolved.read_text(encoding="utf-8"))


def load_stops(path: str | Path) -> list[RouteStop]:
    """Load and validate a stop list JSON file."""
    return _STOPS_ADAPTER.validate_python(_read_json(path))


def load_routes(path: str | Path) -> list[Route]:
    """Load and validate one route or a list of routes."""
    payload = _read_json(path)
    if isinstance(payload, dict):
        payload = [payload]
    return _ROUTES_ADAPTER.validate_python(payload)


def load_positions(path: str | Path) -> list[Position]:
    """Load and validate a GPS trail, oldest fix first."""
    positions = _POSITIONS_ADAPTER.validate_python(_read_json(path))
    return sorted(positions, key=lambda p: p.timestamp)
