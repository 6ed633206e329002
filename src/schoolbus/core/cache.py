from __future__ import annotations

import contextvars
import json
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from hashlib import sha256
from typing import Any, Callable, Hashable

from schoolbus.core.geo import Coordinate

"""
In-process TTL cache.

This cache is intentionally lightweight:
- Values live in a dict guarded by a lock, so concurrent ETA requests for many buses can
  read and write without corrupting it. Independent keys never interact.
- TTL is enforced strictly on read: an expired entry is dropped and never served.
- It is not durable across process restarts.

`EtaCache` layers the ETA key scheme on top: (tenant, bus, hash(destination)).
"""

# Hard ceiling for ETA entries, whatever the caller asks for.
MAX_ETA_TTL_SECONDS = 300


@dataclass(frozen=True)
class CacheEntry:
    """A stored value plus its creation time and lifetime."""

    created_at_unix: float
    ttl_seconds: float
    value: Any

    def expired(self, now: float) -> bool:
        return now - self.created_at_unix >= self.ttl_seconds


@dataclass
class CacheStats:
    """Per-request cache usage stats (best-effort)."""

    hits: int = 0
    misses: int = 0
    expired: int = 0
    sets: int = 0
    evictions: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "hits": int(self.hits),
            "misses": int(self.misses),
            "expired": int(self.expired),
            "sets": int(self.sets),
            "evictions": int(self.evictions),
        }


_cache_stats_var: contextvars.ContextVar[CacheStats | None] = contextvars.ContextVar(
    "schoolbus_cache_stats", default=None
)


def _stats() -> CacheStats | None:
    return _cache_stats_var.get()


@contextmanager
def record_cache_stats() -> CacheStats:
    """Capture cache stats within the current context (thread/task-safe)."""

    stats = CacheStats()
    token = _cache_stats_var.set(stats)
    try:
        yield stats
    finally:
        _cache_stats_var.reset(token)


class TTLCache:
    """A thread-safe in-memory cache with per-entry TTL."""

    def __init__(self, default_ttl_seconds: float = 300, enabled: bool = True):
        if float(default_ttl_seconds) <= 0:
            raise ValueError("default_ttl_seconds must be > 0")
        self._default_ttl_seconds = float(default_ttl_seconds)
        self._enabled = enabled
        self._entries: dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._enabled

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Any | None:
        """Return the cached value if present and not expired; otherwise None."""
        if not self._enabled:
            return None

        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(now):
                del self._entries[key]
                st = _stats()
                if st:
                    st.misses += 1
                    st.expired += 1
                return None

        st = _stats()
        if entry is None:
            if st:
                st.misses += 1
            return None
        if st:
            st.hits += 1
        return entry.value

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        """Store `value` under `key`; a later write for the same key wins."""
        if not self._enabled:
            return None

        ttl = float(ttl_seconds) if ttl_seconds is not None else self._default_ttl_seconds
        if ttl <= 0:
            raise ValueError("ttl_seconds must be > 0")
        entry = CacheEntry(created_at_unix=time.time(), ttl_seconds=ttl, value=value)
        with self._lock:
            self._entries[key] = entry
        st = _stats()
        if st:
            st.sets += 1

    def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Remove every key matching `predicate`; returns how many were removed."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
        st = _stats()
        if st and doomed:
            st.evictions += len(doomed)
        return len(doomed)

    def purge_expired(self) -> int:
        now = time.time()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.expired(now)]
            for k in doomed:
                del self._entries[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def destination_digest(destination: Coordinate) -> str:
    """Stable hash of a destination coordinate (part of the ETA cache key)."""
    payload = json.dumps({"lat": destination.lat, "lng": destination.lon}, sort_keys=True)
    return sha256(payload.encode("utf-8")).hexdigest()


class EtaCache:
    """ETA results keyed by (tenant, bus, destination) with a TTL of at most five minutes."""

    def __init__(self, store: TTLCache | None = None, ttl_seconds: float = MAX_ETA_TTL_SECONDS):
        self._store = store if store is not None else TTLCache(default_ttl_seconds=MAX_ETA_TTL_SECONDS)
        self._ttl_seconds = min(float(ttl_seconds), MAX_ETA_TTL_SECONDS)

    @staticmethod
    def key(tenant_id: str, bus_id: str, destination: Coordinate) -> tuple[str, str, str, str]:
        return ("eta", str(tenant_id), str(bus_id), destination_digest(destination))

    def get(self, tenant_id: str, bus_id: str, destination: Coordinate) -> Any | None:
        return self._store.get(self.key(tenant_id, bus_id, destination))

    def put(
        self,
        tenant_id: str,
        bus_id: str,
        destination: Coordinate,
        result: Any,
        ttl_seconds: float | None = None,
    ) -> None:
        ttl = self._ttl_seconds if ttl_seconds is None else min(float(ttl_seconds), MAX_ETA_TTL_SECONDS)
        self._store.set(self.key(tenant_id, bus_id, destination), result, ttl_seconds=ttl)

    def evict_bus(self, tenant_id: str, bus_id: str) -> int:
        """Drop every cached ETA for one bus of one tenant (other buses are untouched)."""
        prefix = ("eta", str(tenant_id), str(bus_id))
        return self._store.delete_where(lambda k: isinstance(k, tuple) and k[:3] == prefix)
