"""
ResponseCache - Async-compatible response cache with TTL.

Features:
- Memory-based cache with oldest-entry eviction
- Absolute expiry per entry, expired entries are treated as absent
- Category invalidation by key prefix
- Async-safe operations (guarded by an asyncio.Lock)
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from loguru import logger


@dataclass
class CachedEntry:
    """A cached response body with its absolute expiry (epoch seconds)."""

    data: Any
    expires_at: float
    stored_at: float

    def is_usable(self, now: float) -> bool:
        return now < self.expires_at

    def expires_in(self, now: float) -> float:
        return max(0.0, self.expires_at - now)


class ResponseCache:
    """
    Async-compatible response cache keyed by request signature.

    Usage:
        cache = ResponseCache(max_size=200)

        entry = await cache.get_from_cache(key)
        if entry:
            return entry.data

        data = await fetch_data()
        await cache.save_to_cache(key, data, ttl=timedelta(minutes=5))
    """

    def __init__(
        self,
        max_size: int = 200,
        default_ttl: timedelta = timedelta(minutes=5),
        clock: Callable[[], float] = time.time,
        debug: bool = False,
    ):
        self._memory: dict[str, CachedEntry] = {}
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._debug = debug
        self._lock = asyncio.Lock()
        self._stats = CacheStats()

    async def get_from_cache(self, key: str) -> CachedEntry | None:
        """
        Get an entry from cache.

        Returns the entry if present and unexpired, None otherwise.
        Expired entries are dropped on read.
        """
        async with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                self._stats.misses += 1
                self._log(f"MISS: {key[:60]}")
                return None

            if not entry.is_usable(self._clock()):
                del self._memory[key]
                self._stats.misses += 1
                self._stats.expirations += 1
                self._log(f"EXPIRED: {key[:60]}")
                return None

            self._stats.hits += 1
            self._log(f"HIT: {key[:60]}")
            return entry

    async def save_to_cache(
        self,
        key: str,
        data: Any,
        ttl: timedelta | None = None,
    ) -> CachedEntry:
        """
        Store data under `key` for `ttl` (uses default if not specified).
        """
        ttl = ttl or self._default_ttl
        now = self._clock()
        entry = CachedEntry(data=data, expires_at=now + ttl.total_seconds(), stored_at=now)

        async with self._lock:
            if len(self._memory) >= self._max_size and key not in self._memory:
                self._evict_oldest()

            self._memory[key] = entry
            self._log(f"SET: {key[:60]} (TTL: {ttl.total_seconds()}s)")
        return entry

    async def delete(self, key: str) -> bool:
        """Delete a specific key from cache."""
        async with self._lock:
            if key in self._memory:
                del self._memory[key]
                self._log(f"DELETE: {key[:60]}")
                return True
            return False

    async def clear_cache_category(self, prefix: str) -> int:
        """
        Remove all keys starting with `prefix`.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            keys_to_delete = [k for k in self._memory if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._memory[key]

        logger.debug(f"Cleared {len(keys_to_delete)} cache entries for category: {prefix}")
        return len(keys_to_delete)

    async def clear_cache(self) -> None:
        """Clear all cache entries."""
        async with self._lock:
            count = len(self._memory)
            self._memory.clear()
            self._log(f"CLEAR: {count} entries removed")

    async def cleanup_expired(self) -> int:
        """Remove all expired entries. Returns count of removed entries."""
        now = self._clock()
        async with self._lock:
            expired_keys = [k for k, v in self._memory.items() if not v.is_usable(now)]
            for key in expired_keys:
                del self._memory[key]

            if expired_keys:
                self._stats.expirations += len(expired_keys)
                self._log(f"CLEANUP: {len(expired_keys)} expired entries removed")

            return len(expired_keys)

    def _evict_oldest(self) -> None:
        """Evict the oldest entry. Caller holds the lock."""
        if not self._memory:
            return

        oldest_key = min(self._memory, key=lambda k: self._memory[k].stored_at)
        del self._memory[oldest_key]
        self._stats.evictions += 1
        self._log(f"EVICT: {oldest_key[:60]}")

    def get_stats(self) -> "CacheStats":
        """Get cache statistics."""
        self._stats.size = len(self._memory)
        self._stats.max_size = self._max_size
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[ResponseCache] {message}")


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    expirations: int = 0
    evictions: int = 0
    size: int = 0
    max_size: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "expirations": self.expirations,
            "evictions": self.evictions,
            "size": self.size,
            "max_size": self.max_size,
            "hit_rate": f"{self.hit_rate:.2%}",
        }
