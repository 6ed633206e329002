# src/schoolbus/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/schoolbus/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `GOOGLE_MAPS_API_KEY`, `MAPBOX_ACCESS_TOKEN`)
- an external YAML file via `SCHOOLBUS_CONFIG_PATH`

Design rule:
- Tuning knobs (speeds, thresholds, TTLs) live in YAML, not hard-coded in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from schoolbus.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `schoolbus.config`."""
    text = resources.files("schoolbus.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "SchoolBus"
    timezone: str = "UTC"
    http_timeout_seconds: float = Field(4, gt=0, le=30)
    log_level: str = "INFO"


class OsrmSettings(BaseModel):
    base_url: str = "https://router.project-osrm.org"
    profile: str = "driving"
    max_requests_per_minute: float = Field(0, ge=0)


class GoogleSettings(BaseModel):
    base_url: str = "https://maps.googleapis.com/maps/api/distancematrix/json"
    api_key: str | None = None
    traffic_model: Literal["best_guess", "pessimistic", "optimistic"] = "best_guess"
    max_requests_per_minute: float = Field(60, ge=0)


class MapboxSettings(BaseModel):
    base_url: str = "https://api.mapbox.com/directions/v5/mapbox/driving-traffic"
    access_token: str | None = None
    max_requests_per_minute: float = Field(60, ge=0)


class RoutingSettings(BaseModel):
    default_provider: Literal["osrm", "google", "mapbox"] = "osrm"
    fallback_speed_kmh: float = Field(30, gt=0)
    osrm: OsrmSettings = Field(default_factory=OsrmSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)
    mapbox: MapboxSettings = Field(default_factory=MapboxSettings)


class EtaSettings(BaseModel):
    # Cached ETAs must never outlive five minutes.
    cache_ttl_seconds: int = Field(300, gt=0, le=300)
    max_location_age_minutes: float = Field(60, gt=0)
    proximity_threshold_km: float = Field(0.5, ge=0)


class OptimizationSettings(BaseModel):
    average_speed_kmh: float = Field(30, gt=0)
    dwell_minutes_per_stop: float = Field(2, ge=0)


class AlertSettings(BaseModel):
    enabled: bool = True
    eta_threshold_minutes: float = Field(10, ge=0)
    repeat_suppression_minutes: float = Field(5, ge=0)
    notification_ttl_minutes: float = Field(10, gt=0)
    enable_sms: bool = True
    enable_email: bool = True


class PlaybackSettings(BaseModel):
    speed_limit_mph: float = Field(35, gt=0)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    routing: RoutingSettings = Field(default_factory=RoutingSettings)
    eta: EtaSettings = Field(default_factory=EtaSettings)
    optimization: OptimizationSettings = Field(default_factory=OptimizationSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    playback: PlaybackSettings = Field(default_factory=PlaybackSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: We intentionally keep this whitelist small to avoid exposing unsafe overrides.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("SCHOOLBUS_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    provider = os.getenv("SCHOOLBUS_ETA_PROVIDER")
    if provider:
        data.setdefault("routing", {})["default_provider"] = provider.strip().lower()

    osrm_url = os.getenv("OSRM_BASE_URL")
    if osrm_url:
        data.setdefault("routing", {}).setdefault("osrm", {})["base_url"] = osrm_url

    google_key = os.getenv("GOOGLE_MAPS_API_KEY")
    if google_key:
        data.setdefault("routing", {}).setdefault("google", {})["api_key"] = google_key

    mapbox_token = os.getenv("MAPBOX_ACCESS_TOKEN")
    if mapbox_token:
        data.setdefault("routing", {}).setdefault("mapbox", {})["access_token"] = mapbox_token

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("SCHOOLBUS_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
