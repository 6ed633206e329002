from __future__ import annotations

from typing import Any, Mapping

from schoolbus.config.settings import Settings

"""
Per-tenant settings overrides (safe subset).

Each tenant (company) may tune a few knobs for its own fleet: which routing provider
computes ETAs, the proximity and ETA-notification thresholds, and whether alerts are
sent at all. This module:
- validates the override payload against a whitelist,
- deep-merges the safe subset onto current settings,
- re-validates with Pydantic to ensure types/ranges remain correct.

Security note:
Provider credentials and base URLs are deployment-wide and cannot be overridden here.
"""

# A value of True means "allow any keys under this subtree".
# A nested dict means "only allow the listed keys, recursively".
ALLOWED_TENANT_OVERRIDES_TREE: dict[str, Any] = {
    "routing": {"default_provider": True, "fallback_speed_kmh": True},
    "eta": {"max_location_age_minutes": True, "proximity_threshold_km": True},
    "optimization": True,
    "alerts": True,
    "playback": True,
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, override_value in override.items():
        if isinstance(override_value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(dict(merged[key]), override_value)
            continue
        merged[key] = override_value
    return merged


def _filter_overrides(
    overrides: Mapping[str, Any],
    *,
    allowed_tree: Mapping[str, Any],
    path: tuple[str, ...] = (),
) -> dict[str, Any]:
    filtered: dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in allowed_tree:
            dotted_path = ".".join((*path, key))
            raise ValueError(f"tenant overrides contain a disallowed key: '{dotted_path}'")

        allowed = allowed_tree[key]
        if allowed is True:
            filtered[key] = value
            continue

        if not isinstance(value, Mapping):
            dotted_path = ".".join((*path, key))
            raise ValueError(f"tenant overrides key '{dotted_path}' must be a mapping")

        filtered[key] = _filter_overrides(value, allowed_tree=allowed, path=(*path, key))
    return filtered


def apply_tenant_overrides(settings: Settings, overrides: Mapping[str, Any] | None) -> Settings:
    """Return `settings` with a tenant's whitelisted overrides applied.

    The input model is never mutated; a new validated `Settings` is returned
    (or the same object when there is nothing to apply).
    """
    if not overrides:
        return settings

    safe_overrides = _filter_overrides(overrides, allowed_tree=ALLOWED_TENANT_OVERRIDES_TREE)
    merged_payload = _deep_merge(settings.model_dump(mode="python"), safe_overrides)
    return Settings.model_validate(merged_payload)


class TenantSettings:
    """Registry of per-tenant overrides resolved on top of the base settings."""

    def __init__(self, base: Settings, overrides: Mapping[str, Mapping[str, Any]] | None = None):
        self._base = base
        self._resolved: dict[str, Settings] = {}
        self._overrides: dict[str, Mapping[str, Any]] = {}
        for tenant_id, payload in (overrides or {}).items():
            self.set_overrides(tenant_id, payload)

    @property
    def base(self) -> Settings:
        return self._base

    def set_overrides(self, tenant_id: str, overrides: Mapping[str, Any] | None) -> None:
        # Validate eagerly so a bad payload is rejected when it is stored, not on first use.
        resolved = apply_tenant_overrides(self._base, overrides)
        self._overrides[tenant_id] = dict(overrides or {})
        self._resolved[tenant_id] = resolved

    def for_tenant(self, tenant_id: str | None) -> Settings:
        if tenant_id is None:
            return self._base
        return self._resolved.get(tenant_id, self._base)
