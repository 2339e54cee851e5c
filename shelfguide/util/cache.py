import threading
from collections import OrderedDict


class CacheMetrics:
    """Hit/miss/eviction counters, safe to bump from any thread."""

    hits: int
    misses: int
    evictions: int
    _lock: threading.Lock

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def _bump(self, counter: str):
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def record_hit(self):
        self._bump("hits")

    def record_miss(self):
        self._bump("misses")

    def record_eviction(self):
        self._bump("evictions")

    def hit_rate(self) -> float:
        """Percentage (0-100) of lookups answered from memory."""
        return self.snapshot()["hit_rate"]

    def snapshot(self) -> dict[str, float]:
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
                "hit_rate": self.hits * 100 / lookups if lookups else 0.0,
            }

    def reset(self):
        with self._lock:
            self.hits = 0
            self.misses = 0
            self.evictions = 0


class SimpleCache[VT, *KTs]:
    """
    In-process key/value tier with an optional LRU bound.

    Entries carry no expiry of their own; whether a stored value is still
    usable is up to the caller (cover entries decide freshness from their
    failure timestamp).
    """

    _entries: OrderedDict[tuple[*KTs], VT]
    _lock: threading.Lock
    _maxsize: int | None
    _metrics: CacheMetrics

    def __init__(self, maxsize: int | None = None):
        """
        Args:
            maxsize: Entry limit, None for unbounded. The least recently used
                entry is dropped once the limit is exceeded.
        """
        self._entries = OrderedDict()
        self._lock = threading.Lock()
        self._maxsize = maxsize
        self._metrics = CacheMetrics()

    def get(self, *key: *KTs) -> VT | None:
        with self._lock:
            try:
                value = self._entries[key]
            except KeyError:
                self._metrics.record_miss()
                return None
            self._entries.move_to_end(key)
        self._metrics.record_hit()
        return value

    def set(self, value: VT, *key: *KTs):
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = value
            while self._maxsize is not None and len(self._entries) > self._maxsize:
                self._entries.popitem(last=False)
                self._metrics.record_eviction()

    def delete(self, *key: *KTs) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def flush(self):
        with self._lock:
            self._entries.clear()

    def get_metrics(self) -> CacheMetrics:
        return self._metrics

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
