"""In-process TTL cache for hot configuration reads (cost settings, gift catalog).

Values are per-process; a stale read is bounded by the entry's TTL.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

T = TypeVar("T")


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    def __init__(self, *, max_keys: int = 1_000, clock: Callable[[], float] = time.monotonic):
        self._max_keys = max_keys
        self._clock = clock
        self._lock = Lock()
        self._data: Dict[str, _Entry] = {}

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._data.get(key)
            if not entry:
                return None
            if entry.expires_at <= now:
                self._data.pop(key, None)
                return None
            return entry.value

    def set(self, key: str, value: Any, *, ttl_seconds: float) -> None:
        expires_at = self._clock() + float(ttl_seconds)
        with self._lock:
            if key not in self._data and len(self._data) >= self._max_keys:
                # Simple eviction: drop the oldest inserted key.
                self._data.pop(next(iter(self._data)), None)
            self._data[key] = _Entry(value=value, expires_at=expires_at)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    async def get_or_load(
        self, key: str, *, ttl_seconds: float, loader: Callable[[], Awaitable[T]]
    ) -> T:
        hit = self.get(key)
        if hit is not None:
            return hit
        value = await loader()
        self.set(key, value, ttl_seconds=ttl_seconds)
        return value
