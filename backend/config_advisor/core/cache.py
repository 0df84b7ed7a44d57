"""Thread-safe expiring cache used for learning data and analytics results."""

from __future__ import annotations

import time
from threading import Lock
from typing import Any, Callable, Hashable


class ExpiringCache:
    """Maps keys to ``(value, expires_at)`` pairs; expiry is checked on read."""

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: dict[Hashable, tuple[Any, float]] = {}
        self._lock = Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if expires_at <= now:
                self._store.pop(key, None)
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._store[key] = (value, self._clock() + self.ttl_seconds)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        sentinel = object()
        cached = self.get(key, sentinel)
        if cached is not sentinel:
            return cached
        value = factory()
        self.set(key, value)
        return value

    def evict(self, predicate: Callable[[Hashable], bool]) -> int:
        with self._lock:
            doomed = [key for key in self._store if predicate(key)]
            for key in doomed:
                del self._store[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
