"""
In-process LRU cache with per-entry expiry.

Backs the dataset store (one entry per upload) and the dashboard service
(one entry per computed view, keyed `{dataset_id}:{view}:{params hash}`).
Sizes and TTLs can be overridden per cache through environment variables,
see create_cache().
"""

import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Tuple


@dataclass
class CacheEntry:
    value: Any
    expires_at: float
    hits: int = 0

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class LRUCache:
    """
    Bounded mapping with least-recently-used eviction.

    Every entry expires `ttl` seconds after it was written. A read refreshes
    recency but not expiry. All operations hold one re-entrant lock, so the
    cache can be shared between request threads.
    """

    def __init__(self, max_size: int = 1000, default_ttl: int = 300):
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expired(time.monotonic()):
                del self._entries[key]
                entry = None

            if entry is None:
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            entry.hits += 1
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._entries.pop(key, None)
            while self._entries and len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=time.monotonic() + (ttl or self.default_ttl),
            )

    def invalidate(self, key: str) -> bool:
        """Drop one key. Returns False when it was not cached."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every key starting with `prefix`; returns how many were dropped."""
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def items(self) -> List[Tuple[str, Any]]:
        """
        Live (key, value) pairs, least recently used first.

        Expired entries are purged on the way. Listing neither counts as a
        hit nor changes recency.
        """
        with self._lock:
            self._purge_expired()
            return [(key, entry.value) for key, entry in self._entries.items()]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, entry in self._entries.items() if entry.expired(now)]:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hit_rate": round(self._hits / lookups, 4) if lookups else 0.0,
            }


def create_cache(
    name: str,
    max_size: Optional[int] = None,
    default_ttl: Optional[int] = None
) -> LRUCache:
    """
    Build a cache, letting the environment override its limits.

    `{NAME}_CACHE_MAX_SIZE` and `{NAME}_CACHE_TTL_SECONDS` take precedence
    over the arguments; without either, 500 entries and 300 seconds.
    """
    prefix = name.upper()
    env_size = os.environ.get(f"{prefix}_CACHE_MAX_SIZE")
    env_ttl = os.environ.get(f"{prefix}_CACHE_TTL_SECONDS")
    return LRUCache(
        max_size=int(env_size) if env_size else (max_size or 500),
        default_ttl=int(env_ttl) if env_ttl else (default_ttl or 300),
    )
