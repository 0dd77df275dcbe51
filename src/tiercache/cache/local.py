"""In-process cache tier with lazy and swept expiry."""

import asyncio
import logging
from typing import Any

from tiercache.cache.base import (
    CacheBackend,
    CacheEntry,
    Clock,
    TierStats,
    utcnow,
    validate_ttl,
)

logger = logging.getLogger(__name__)


class LocalStore(CacheBackend):
    """
    In-memory key -> CacheEntry table.

    Best for:
    - Single-instance deployments
    - A hot copy in front of the remote tier

    Limitations:
    - Not shared across processes
    - Lost on restart

    Expired entries are removed either when a ``get`` finds them (lazy
    eviction) or by ``sweep``. All access goes through one asyncio lock.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        """
        Initialize the local store.

        Args:
            clock: Callable returning the current aware datetime (for tests)
        """
        self._store: dict[str, CacheEntry] = {}
        self._clock = clock or utcnow
        self._lock = asyncio.Lock()
        self._stats = TierStats()

    @property
    def name(self) -> str:
        return "local"

    async def get(self, key: str) -> Any | None:
        """Get a live value, evicting it if it has expired."""
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._stats.misses += 1
                logger.debug(f"MISS: {key}")
                return None

            if entry.is_expired(self._clock()):
                del self._store[key]
                self._stats.evictions += 1
                self._stats.misses += 1
                logger.debug(f"EXPIRED: {key}")
                return None

            self._stats.hits += 1
            logger.debug(f"HIT: {key}")
            return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store a value, replacing any existing entry."""
        ttl = validate_ttl(ttl_seconds)

        async with self._lock:
            self._store[key] = CacheEntry.create(value, ttl, self._clock())
            self._stats.sets += 1
        logger.debug(f"SET: {key} (TTL: {ttl}s)")

    async def delete(self, key: str) -> bool:
        """Remove an entry; counts as an eviction when something was removed."""
        async with self._lock:
            if self._store.pop(key, None) is None:
                return False
            self._stats.evictions += 1
        logger.debug(f"DELETE: {key}")
        return True

    async def sweep(self) -> int:
        """Remove all expired entries and return how many were removed."""
        async with self._lock:
            now = self._clock()
            expired_keys = [k for k, v in self._store.items() if v.is_expired(now)]
            for key in expired_keys:
                del self._store[key]
            self._stats.evictions += len(expired_keys)

        if expired_keys:
            logger.info(f"Cleanup: removed {len(expired_keys)} expired entries")
        return len(expired_keys)

    async def clear(self) -> int:
        """Drop every entry. Counters are left untouched."""
        async with self._lock:
            count = len(self._store)
            self._store.clear()
        logger.info(f"Cleared {count} entries")
        return count

    def snapshot_stats(self) -> dict[str, Any]:
        """
        Current counters.

        ``entries`` may include expired entries not yet swept.
        """
        return {
            "type": self.name,
            "entries": len(self._store),
            **self._stats.as_dict(),
        }

    def __len__(self) -> int:
        return len(self._store)
