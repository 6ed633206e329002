from __future__ import annotations

from schoolbus.config.settings import get_settings


def test_packaged_defaults():
    get_settings.cache_clear()
    settings = get_settings()

    assert settings.routing.fallback_speed_kmh == 30
    assert settings.eta.cache_ttl_seconds == 300
    assert settings.eta.proximity_threshold_km == 0.5
    assert settings.optimization.dwell_minutes_per_stop == 2


def test_env_overrides_are_whitelisted(monkeypatch):
    monkeypatch.setenv("SCHOOLBUS_ETA_PROVIDER", "Mapbox")
    monkeypatch.setenv("MAPBOX_ACCESS_TOKEN", "pk.test")
    monkeypatch.setenv("OSRM_BASE_URL", "http://osrm.internal:5000")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.routing.default_provider == "mapbox"
        assert settings.routing.mapbox.access_token == "pk.test"
        assert settings.routing.osrm.base_url == "http://osrm.internal:5000"
    finally:
        get_settings.cache_clear()


def test_external_config_file(monkeypatch, tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("eta:\n  proximity_threshold_km: 0.2\n", encoding="utf-8")
    monkeypatch.setenv("SCHOOLBUS_CONFIG_PATH", str(path))
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.eta.proximity_threshold_km == 0.2
        assert settings.eta.cache_ttl_seconds == 300
    finally:
        get_settings.cache_clear()
