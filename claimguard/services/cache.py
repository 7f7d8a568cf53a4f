"""
TTL caches owned by individual services

Every verifier and the firewall hold their own cache instance; nothing is
shared at module level. Entries expire after ``ttl_seconds`` and can be
dropped explicitly when a caller knows the underlying data changed.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Small in-memory key/value cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: Dict[str, Tuple[float, T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: T) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            # Evict the oldest entry (insertion order)
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class FileCache:
    """
    Read-through cache for parsed file contents, keyed by resolved path.

    The loader runs in a worker thread so event-loop callers never block on
    disk I/O.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._cache: TTLCache[Any] = TTLCache(ttl_seconds=ttl_seconds, clock=clock)

    @staticmethod
    def _key(path: Union[str, Path]) -> str:
        return str(Path(path).resolve())

    async def get(self, path: Union[str, Path], loader: Callable[[Path], Any]) -> Any:
        key = self._key(path)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"File cache HIT: {key}")
            return cached

        logger.debug(f"File cache MISS: {key}")
        value = await asyncio.to_thread(loader, Path(key))
        if value is not None:
            self._cache.set(key, value)
        return value

    def invalidate(self, path: Optional[Union[str, Path]] = None) -> None:
        """Forget one file (or all files) so the next read hits disk."""
        if path is None:
            self._cache.clear()
        else:
            self._cache.invalidate(self._key(path))

    def __len__(self) -> int:
        return len(self._cache)
