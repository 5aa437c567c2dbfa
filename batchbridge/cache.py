import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional


@dataclass
class CacheEntry:
    value: Any
    timestamp: float


class TTLCache:
    """In-memory cache whose entries expire ``ttl`` seconds after insertion.

    Expired entries are dropped lazily: on read, or when ``sweep()`` runs.
    ``None`` is a legitimate cached value, so callers that need to tell a
    cached ``None`` from a miss use ``get_entry``.
    """

    def __init__(self, ttl: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp >= self.ttl

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._expired(entry, self._clock()):
            del self._cache[key]
            return None
        return entry

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.get_entry(key)
        return entry.value if entry is not None else default

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = CacheEntry(value=value, timestamp=self._clock())

    def sweep(self) -> int:
        """Remove every expired entry; returns how many were removed."""
        now = self._clock()
        stale = [key for key, entry in self._cache.items() if self._expired(entry, now)]
        for key in stale:
            del self._cache[key]
        return len(stale)

    def clear(self) -> None:
        self._cache.clear()

    def __contains__(self, key: str) -> bool:
        return self.get_entry(key) is not None

    def __len__(self) -> int:
        return len(self._cache)


class BoundedCache:
    """Size-capped cache without expiry.

    When full, the oldest *inserted* key is evicted. Reads do not refresh a
    key's position, so this is not an LRU.
    """

    def __init__(self, max_size: int = 500):
        self.max_size = max_size
        self._cache: Dict[str, Any] = {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if key in self._cache:
            self._cache[key] = value
            return
        self._cache[key] = value
        while len(self._cache) > self.max_size:
            oldest = next(iter(self._cache))
            del self._cache[oldest]

    def clear(self) -> None:
        self._cache.clear()

    def keys(self) -> Iterator[str]:
        return iter(list(self._cache))

    def __contains__(self, key: str) -> bool:
        return key in self._cache

    def __len__(self) -> int:
        return len(self._cache)
