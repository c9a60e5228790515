"""
Cache store collaborator.

The indexer only needs ``get`` / ``set(key, value, ttl)`` / ``delete``.
:class:`CacheStore` names that contract so any backend (Redis, Memcached, a
product-wide cache) can be passed in; :class:`TTLCache` is the process-local
implementation used by default and in tests.

Entries expire by timestamp comparison on read; nothing runs in the
background.
"""
from __future__ import annotations

import time
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from src.core.logging import get_logger

logger = get_logger(__name__)


# ── Configuration ───────────────────────────────────────

DEFAULT_TTL_SECONDS = 3600  # 1 hour
DEFAULT_MAX_SIZE = 64


class CacheStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any, ttl: float | None = None) -> None: ...

    def delete(self, key: str) -> bool: ...


# ── Cache entry ─────────────────────────────────────────


@dataclass
class CacheEntry:
    """A single cached value."""
    key: str
    value: Any
    created_at: float
    ttl: float
    hit_count: int = 0

    @property
    def is_expired(self) -> bool:
        return (time.time() - self.created_at) > self.ttl


# ── Cache implementation ────────────────────────────────


class TTLCache:
    """Thread-safe in-memory TTL cache.

    The lock only guards dictionary operations, so a slow producer of a
    value never blocks readers of other keys.  Replacing a key is a single
    assignment: readers see the old value or the new one.

    Parameters
    ----------
    ttl : float
        Default time-to-live in seconds for entries stored without one.
    max_size : int
        Maximum number of entries. Oldest entries are evicted when full.
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, max_size: int = DEFAULT_MAX_SIZE):
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._ttl = ttl
        self._max_size = max_size
        self._hits = 0
        self._misses = 0

    # ── Public API ──────────────────────────────────────

    def get(self, key: str) -> Any | None:
        """Retrieve a cached value, or ``None`` on miss / expiry."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired:
                del self._store[key]
                self._misses += 1
                return None
            entry.hit_count += 1
            self._hits += 1
            logger.debug("Cache HIT key=%s hits=%d", key, entry.hit_count)
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key*, replacing any previous entry."""
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=time.time(),
            ttl=self._ttl if ttl is None else ttl,
        )
        with self._lock:
            if len(self._store) >= self._max_size and key not in self._store:
                self._evict_oldest()
            self._store[key] = entry
            size = len(self._store)
        logger.debug("Cache SET key=%s size=%d", key, size)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def stats(self) -> dict[str, Any]:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._store),
                "max_size": self._max_size,
                "ttl_seconds": self._ttl,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
            }

    # ── Internals ───────────────────────────────────────

    def _evict_oldest(self) -> None:
        """Remove the entry with the earliest creation time."""
        if not self._store:
            return
        oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
        del self._store[oldest_key]
