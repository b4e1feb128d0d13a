"""In-process TTL cache with capacity-bounded, oldest-first eviction."""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

import structlog

logger = structlog.stdlib.get_logger()

V = TypeVar("V")
R = TypeVar("R")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[V]):
    """A cached value with its creation time and lifetime."""

    value: V
    created_at: float
    ttl_secs: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_secs


class TTLCache:
    """Thread-safe expiring key/value store.

    - Entries expire *ttl_secs* after insertion; expiry is checked lazily on
      ``get`` and in bulk by ``cleanup`` (run from a background task).
    - When full, inserting a new key evicts the oldest-inserted entry.
    - Re-setting an existing key replaces it and moves it to the newest slot.

    Usage::

        cache = TTLCache(max_size=1000, default_ttl_secs=300)
        cache.set("target:stats:t1:24h", stats, ttl_secs=60)
        stats = cache.get("target:stats:t1:24h")
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl_secs: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        self._max_size = max_size
        self._default_ttl_secs = default_ttl_secs
        self._clock = clock
        # dict preserves insertion order, which is the eviction order.
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or *default* if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return default
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_secs: float | None = None) -> None:
        ttl = self._default_ttl_secs if ttl_secs is None else ttl_secs
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self._max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._evictions += 1
            self._entries[key] = CacheEntry(
                value=value,
                created_at=self._clock(),
                ttl_secs=ttl,
            )

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every key starting with *prefix*. Returns the count removed."""
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for k in expired:
                del self._entries[k]
        if expired:
            logger.debug("cache_cleanup", removed=len(expired))
        return len(expired)

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[R]],
        ttl_secs: float | None = None,
    ) -> R:
        """Return the cached value for *key*, computing and storing it on miss.

        ``None`` results are not cached.
        """
        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            return cached  # type: ignore[no-any-return]
        value = await compute()
        if value is not None:
            self.set(key, value, ttl_secs)
        return value

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# ── Cache keys ──────────────────────────────────────────────────


def target_stats_key(target_id: str, hours: int = 24) -> str:
    return f"target:stats:{target_id}:{hours}h"


def target_checks_key(target_id: str, limit: int = 50) -> str:
    return f"target:checks:{target_id}:{limit}"


def owner_dashboard_key(owner_id: str) -> str:
    return f"owner:dashboard:{owner_id}"
