"""
Ephemeral indicator cache - thread-safe LRU with per-entry time-to-live.
Holds cache-tier indicator values keyed by instrument, indicator and timestamp.
"""

import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Optional, Tuple


def indicator_cache_key(instrument_id: int, indicator: str, t: Any) -> str:
    """
    Build the cache key for one indicator value.

    Format: tw:ind:<instrument_id>:<indicator>:<iso timestamp>
    """
    stamp = t.isoformat() if hasattr(t, 'isoformat') else str(t)
    return f"tw:ind:{instrument_id}:{indicator}:{stamp}"


class MemoryCache:
    """Thread-safe in-memory LRU cache with expiry."""

    def __init__(self, max_size: int = 100000):
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._entries: "OrderedDict[str, Tuple[Any, float]]" = OrderedDict()
        self._lock = Lock()

    def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value for ttl_seconds, evicting the least recently used entry when full."""
        expiry = time.time() + ttl_seconds

        with self._lock:
            if key in self._entries:
                del self._entries[key]

            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)

            self._entries[key] = (value, expiry)

    def get(self, key: str) -> Optional[Any]:
        """Return a live value or None."""
        with self._lock:
            if key not in self._entries:
                return None

            value, expiry = self._entries[key]
            if time.time() > expiry:
                del self._entries[key]
                return None

            self._entries.move_to_end(key)
            return value

    def ttl(self, key: str) -> Optional[int]:
        """Remaining seconds for a key, or None if absent/expired."""
        with self._lock:
            if key not in self._entries:
                return None

            _, expiry = self._entries[key]
            remaining = expiry - time.time()
            if remaining <= 0:
                del self._entries[key]
                return None
            return int(remaining)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
