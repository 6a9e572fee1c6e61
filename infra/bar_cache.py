# infra/bar_cache.py
from __future__ import annotations

import threading
import time
from collections import OrderedDict
from datetime import date
from typing import Callable, Optional, Sequence, Tuple

from core.models import Bar

CacheKey = Tuple[str, date, date]


class BarCache:
    """
    Bounded, thread-safe TTL cache for fetched bar series.

    - Entries expire ttl_sec after they were stored.
    - When more than max_entries are stored, the oldest entry is evicted.
    - The clock is injectable so tests do not have to sleep.

    Stored series are kept as tuples, so a cached series can be shared by
    concurrent runs without anyone mutating it.
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if ttl_sec <= 0:
            raise ValueError("ttl_sec must be > 0")

        self.max_entries = int(max_entries)
        self.ttl_sec = float(ttl_sec)
        self._clock = clock
        self._store: "OrderedDict[CacheKey, Tuple[float, Tuple[Bar, ...]]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key(symbol: str, start: date, end: date) -> CacheKey:
        return (symbol.upper(), start, end)

    def get(self, key: CacheKey) -> Optional[Tuple[Bar, ...]]:
        now = self._clock()
        with self._lock:
            item = self._store.get(key)
            if item is None:
                return None
            stored_at, bars = item
            if now - stored_at < self.ttl_sec:
                return bars
            del self._store[key]
            return None

    def put(self, key: CacheKey, bars: Sequence[Bar]) -> None:
        with self._lock:
            self._store.pop(key, None)
            self._store[key] = (self._clock(), tuple(bars))
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
