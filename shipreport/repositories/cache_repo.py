"""
Cache repository for upstream responses.
"""

import time
from typing import Any, Callable, Optional

from shipreport.core.logging import get_logger

logger = get_logger(__name__)

DAY_IN_SECONDS = 24 * 60 * 60
SWEEP_INTERVAL_SECONDS = 2 * 60 * 60


class InMemoryResponseCache:
    """
    In-process TTL cache keyed by canonical request URL.

    Expired entries read as absent. A sweep that drops expired entries runs
    from ``set`` at most once per ``sweep_interval_seconds`` so reads never
    scan the whole map. When ``bypass`` is set every read misses and every
    write is dropped.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DAY_IN_SECONDS,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        bypass: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            default_ttl_seconds: TTL applied when ``set`` gets none
            sweep_interval_seconds: Minimum time between expiry sweeps
            bypass: Disable reads and writes for this instance
            clock: Seconds source, injectable for tests
        """
        self._cache: dict[str, dict[str, Any]] = {}
        self.default_ttl = default_ttl_seconds
        self.sweep_interval = sweep_interval_seconds
        self._bypass = bypass
        self._clock = clock
        self._last_sweep = clock()

    def is_bypassed(self) -> bool:
        return self._bypass

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from cache."""
        if self._bypass:
            return None

        entry = self._cache.get(key)
        if entry is None:
            return None

        if self._clock() > entry["expires_at"]:
            del self._cache[key]
            return None

        return entry["value"]

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[float] = None,
    ) -> None:
        """Set a value in cache."""
        if self._bypass:
            return

        now = self._clock()
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        self._cache[key] = {
            "value": value,
            "expires_at": now + ttl,
            "created_at": now,
        }

        if now - self._last_sweep >= self.sweep_interval:
            await self.clear_expired()

    async def delete(self, key: str) -> bool:
        """Delete a key from cache."""
        return self._cache.pop(key, None) is not None

    async def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()
        logger.info("Cache cleared")

    async def clear_expired(self) -> int:
        """Clear expired cache entries."""
        now = self._clock()
        self._last_sweep = now
        expired_keys = [
            key for key, entry in self._cache.items()
            if now > entry["expires_at"]
        ]

        for key in expired_keys:
            del self._cache[key]

        if expired_keys:
            logger.debug("Cleared expired cache entries", count=len(expired_keys))

        return len(expired_keys)

    async def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        active = sum(1 for e in self._cache.values() if now <= e["expires_at"])

        return {
            "total_entries": len(self._cache),
            "active_entries": active,
            "expired_entries": len(self._cache) - active,
            "bypassed": self._bypass,
        }
