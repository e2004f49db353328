import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Optional

logger = logging.getLogger(__name__)


class InMemoryTTLCache:
    """In-process LRU cache with per-entry TTL.

    Shared across concurrent requests; every operation holds a lock, so get
    and set are atomic. Writes are last-writer-wins.
    """

    def __init__(self, max_size: int = 1000, ttl_seconds: int = 900):
        """Initialize cache.

        Args:
            max_size: Maximum number of entries before LRU eviction.
            ttl_seconds: Default time to live.
        """
        self._max_size = max_size
        self._ttl_seconds = ttl_seconds
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        """Get value if present and not expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Store value, evicting the least recently used entry when full."""
        ttl = self._ttl_seconds if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, time.monotonic() + ttl)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Cache evicted: {evicted[:12]}")

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        """Hit/miss counters and current size."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total else 0.0,
            }
