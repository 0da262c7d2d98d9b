import time
import logging
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

logger = logging.getLogger("query_engine.cache")

V = TypeVar("V")


class TTLCache(Generic[V]):
    """
    In-memory key/value cache with a per-entry time-to-live.
    Used for resolved entity schemas; entries expire lazily on read.
    """
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, V]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[V]:
        """Get value from cache, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            logger.debug(f"Cache entry expired: {key}")
            return None

        self.hits += 1
        return value

    def set(self, key: str, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def keys(self):
        return list(self._entries.keys())

    def clear(self) -> None:
        """Clear the cache."""
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        ages = [now - stored_at for stored_at, _ in self._entries.values()]
        return {
            "size": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl_seconds,
            "oldest_age_seconds": round(max(ages), 1) if ages else None,
        }
