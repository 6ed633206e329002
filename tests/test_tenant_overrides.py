from __future__ import annotations

import pytest
from pydantic import ValidationError

from schoolbus.config.overrides import TenantSettings, apply_tenant_overrides
from schoolbus.config.settings import Settings, get_settings


def test_apply_tenant_overrides_returns_same_object_when_none():
    settings = get_settings()
    assert apply_tenant_overrides(settings, None) is settings
    assert apply_tenant_overrides(settings, {}) is settings


def test_apply_tenant_overrides_can_override_allowed_knobs():
    settings = Settings()
    overrides = {
        "routing": {"default_provider": "mapbox"},
        "eta": {"proximity_threshold_km": 0.25},
        "alerts": {"eta_threshold_minutes": 15},
    }

    out = apply_tenant_overrides(settings, overrides)

    assert out.routing.default_provider == "mapbox"
    assert out.eta.proximity_threshold_km == 0.25
    assert out.alerts.eta_threshold_minutes == 15
    # The shared base settings must not leak one tenant's values to another.
    assert settings.routing.default_provider == "osrm"
    assert settings.eta.proximity_threshold_km == 0.5


def test_apply_tenant_overrides_rejects_credentials_with_clear_path():
    with pytest.raises(ValueError, match=r"routing\.google"):
        apply_tenant_overrides(Settings(), {"routing": {"google": {"api_key": "stolen"}}})


def test_apply_tenant_overrides_rejects_cache_ttl():
    with pytest.raises(ValueError, match=r"eta\.cache_ttl_seconds"):
        apply_tenant_overrides(Settings(), {"eta": {"cache_ttl_seconds": 3600}})


def test_apply_tenant_overrides_rejects_wrong_value_shapes():
    with pytest.raises(ValueError, match=r"tenant overrides key 'eta' must be a mapping"):
        apply_tenant_overrides(Settings(), {"eta": 1})


def test_apply_tenant_overrides_revalidates_values():
    with pytest.raises(ValidationError):
        apply_tenant_overrides(Settings(), {"routing": {"default_provider": "waze"}})


def test_tenant_settings_resolves_per_tenant():
    base = Settings()
    tenants = TenantSettings(base, {"t1": {"optimization": {"average_speed_kmh": 40}}})

    assert tenants.for_tenant("t1").optimization.average_speed_kmh == 40
    assert tenants.for_tenant("t2") is base
    assert tenants.for_tenant(None) is base


def test_tenant_settings_rejects_bad_payload_when_stored():
    tenants = TenantSettings(Settings())
    with pytest.raises(ValueError):
        tenants.set_overrides("t1", {"app": {"log_level": "DEBUG"}})
    assert tenants.for_tenant("t1") is tenants.base


def test_eta_cache_ttl_is_capped_at_five_minutes():
    with pytest.raises(ValidationError):
        Settings.model_validate({"eta": {"cache_ttl_seconds": 301}})
