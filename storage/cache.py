"""
In-memory freshness cache with a fixed time-to-live
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300  # 5 minutes


@dataclass
class CacheEntry:
    """A cached value and the epoch time it was stored"""
    value: Any
    timestamp: float


class FreshnessCache:
    """
    Time-bounded accelerator over retrieval results

    Entries expire after a fixed window and are dropped on explicit
    invalidation or when an attached store reports a change to the same
    key. There is no size-based eviction. The cache is never the only
    copy of data: everything in it was read from, or written to, the
    persistent store or a seed document.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Optional[Callable[[], float]] = None):
        """
        Initialize the cache

        Args:
            ttl_seconds: Time-to-live for entries in seconds (default: 300)
            clock: Callable returning epoch seconds (default: time.time)
        """
        self.ttl = ttl_seconds
        self.clock = clock or time.time
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

        self.stats = {
            'hits': 0,
            'misses': 0,
            'invalidations': 0
        }

        logger.info(f"Freshness cache initialized with {ttl_seconds}s TTL")

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value if present and fresh, otherwise None"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats['misses'] += 1
                return None

            if self.clock() - entry.timestamp >= self.ttl:
                del self._entries[key]
                self.stats['misses'] += 1
                logger.debug(f"Cache entry expired: {key}")
                return None

            self.stats['hits'] += 1
            return entry.value

    def set(self, key: str, value: Any):
        with self._lock:
            self._entries[key] = CacheEntry(value=value, timestamp=self.clock())

    def invalidate(self, key: str):
        with self._lock:
            if self._entries.pop(key, None) is not None:
                self.stats['invalidations'] += 1
                logger.debug(f"Invalidated cache entry: {key}")

    def clear(self):
        with self._lock:
            self._entries.clear()
        logger.info("Cleared all cache entries")

    def attach(self, store):
        """Invalidate entries whenever the store reports a change made by another context"""
        store.subscribe(self._on_store_change)

    def _on_store_change(self, key: str, value: Any):
        self.invalidate(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def info(self) -> Dict[str, Any]:
        """
        Describe the current cache content

        Returns:
            Dictionary with entry count, per-entry size/age (ms) and total size
        """
        now = self.clock()
        with self._lock:
            entries = [
                {
                    'key': key,
                    'size': len(json.dumps(entry.value, default=str)),
                    'age': int((now - entry.timestamp) * 1000)
                }
                for key, entry in self._entries.items()
            ]

        return {
            'count': len(entries),
            'entries': entries,
            'totalSize': sum(entry['size'] for entry in entries)
        }
