"""In-memory TTL cache shared by the options data router."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


@dataclass
class CacheEntry:
    data: Any
    timestamp: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


class TTLCache:
    """Read-through cache with per-entry TTLs, evicted lazily on read."""

    def __init__(self, default_ttl: float = 30.0, clock: Optional[Callable[[], float]] = None) -> None:
        self.default_ttl = default_ttl
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(
                data=data,
                timestamp=self._clock(),
                ttl=self.default_ttl if ttl is None else ttl,
            )

    def clear(self, pattern: Optional[str] = None) -> int:
        """Drop every entry, or only keys containing ``pattern``; returns the count removed."""

        with self._lock:
            if not pattern:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [key for key in self._entries if pattern in key]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["CacheEntry", "TTLCache"]
