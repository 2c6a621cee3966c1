from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable


class TtlCache:
    """Bounded LRU cache whose entries expire after ``ttl_seconds``.

    ``cached`` is single-flight per key: concurrent callers for a missing key
    queue on that key's load lock and reuse the first caller's result.
    ``None`` is never stored, so a failed lookup is retried by the next caller.
    """

    def __init__(self, ttl_seconds: float, max_entries: int) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._load_locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._guard:
            hit = self._store.get(key)
            if hit is None:
                return None
            value, deadline = hit
            if time.monotonic() >= deadline:
                self._store.pop(key)
                return None
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value: Any) -> Any:
        if value is None or self.ttl_seconds <= 0:
            return value
        with self._guard:
            self._store[key] = (value, time.monotonic() + self.ttl_seconds)
            self._store.move_to_end(key)
            if len(self._store) > self.max_entries:
                self._store.popitem(last=False)
        return value

    def invalidate(self, key: str) -> None:
        with self._guard:
            self._store.pop(key, None)

    def cached(self, key: str, loader: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is not None:
            return value

        with self._guard:
            load_lock = self._load_locks.setdefault(key, threading.Lock())
        with load_lock:
            value = self.get(key)
            if value is None:
                value = self.set(key, loader())
        with self._guard:
            if self._load_locks.get(key) is load_lock and not load_lock.locked():
                del self._load_locks[key]
        return value
