from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

V = TypeVar("V")


class QuoteCache(Generic[V]):
    """Per-symbol TTL cache (default 5 minutes)."""

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._items: Dict[str, Tuple[float, V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            hit = self._items.get(key)
            if hit is None:
                return None
            stored_at, value = hit
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._items[key]
                return None
            return value

    def put(self, key: str, value: V) -> None:
        with self._lock:
            self._items[key] = (self._clock(), value)

    def purge(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [k for k, (ts, _) in self._items.items() if now - ts >= self.ttl_seconds]
            for k in stale:
                del self._items[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
