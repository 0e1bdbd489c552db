"""
Buprenorphine Pharmacy Locator — Injected TTL Cache

Key → value cache with per-entry expiry, handed to SourceMerger instead of
living as a module-level singleton.  Tests substitute ``NullCache`` or a
``MemoryTTLCache`` driven by a fake clock.

Keys for coordinate lookups are built with ``make_cache_key`` from
coordinates rounded to a fixed precision, so nearby searches share entries.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Protocol


def make_cache_key(*parts: Any) -> str:
    """Hash the parts into a 16-character hex key."""
    raw = ":".join(str(p) for p in parts)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


def coordinate_cache_key(prefix: str, latitude: float, longitude: float,
                         precision: int = 2) -> str:
    """Key for a coordinate lookup; ~1 km grid at precision 2."""
    return make_cache_key(prefix, f"{latitude:.{precision}f}", f"{longitude:.{precision}f}")


class TTLCache(Protocol):
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def invalidate(self, key: str) -> None: ...
    def clear(self) -> None: ...
    def __len__(self) -> int: ...


class NullCache:
    """Cache that never stores anything."""

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any) -> None:
        pass

    def invalidate(self, key: str) -> None:
        pass

    def clear(self) -> None:
        pass

    def __len__(self) -> int:
        return 0


class MemoryTTLCache:
    """
    Thread-safe in-memory cache.

    Expired entries are dropped on read; when full, the oldest entry is
    evicted to make room.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_entries:
                self._entries.popitem(last=False)
            self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
