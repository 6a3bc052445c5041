from __future__ import annotations

import os
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Optional


class SessionStore:
    """In-memory session registry with sliding idle TTL and bounded size.

    Entries expire `ttl` seconds after their last access. When capacity is
    exceeded the least recently used entry is evicted. `on_evict` is called
    for every expired or evicted value so owners can release resources.
    """

    def __init__(
        self,
        ttl: float | None = None,
        max_items: int | None = None,
        on_evict: Optional[Callable[[Any], None]] = None,
    ):
        try:
            default_ttl = float(os.getenv("SESSION_TTL_SEC", "7200"))
        except (TypeError, ValueError):
            default_ttl = 7200.0
        try:
            default_max = int(os.getenv("SESSION_MAX_ITEMS", "256"))
        except (TypeError, ValueError):
            default_max = 256
        self._ttl = float(ttl) if ttl is not None else max(1.0, default_ttl)
        self._max_items = max_items if max_items is not None else max(1, default_max)
        self._on_evict = on_evict
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.RLock()

    def _now(self) -> float:
        return time.time()

    def _evict_unlocked(self, key: str) -> None:
        entry = self._store.pop(key, None)
        if entry is not None and self._on_evict is not None:
            self._on_evict(entry[0])

    def _prune_expired_unlocked(self) -> None:
        now = self._now()
        expired_keys = [key for key, (_value, expires_at) in self._store.items() if expires_at <= now]
        for key in expired_keys:
            self._evict_unlocked(key)

    def _enforce_max_items_unlocked(self) -> None:
        while len(self._store) > self._max_items:
            oldest = next(iter(self._store))
            self._evict_unlocked(oldest)

    def get(self, key: str):
        with self._lock:
            self._prune_expired_unlocked()
            entry = self._store.get(key)
            if entry is None:
                return None
            value, _expires_at = entry
            self._store[key] = (value, self._now() + self._ttl)
            self._store.move_to_end(key)
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._prune_expired_unlocked()
            self._store[key] = (value, self._now() + self._ttl)
            self._store.move_to_end(key)
            self._enforce_max_items_unlocked()

    def drop(self, key: str) -> bool:
        with self._lock:
            if key not in self._store:
                return False
            self._evict_unlocked(key)
            return True

    def clear(self) -> None:
        with self._lock:
            for key in list(self._store):
                self._evict_unlocked(key)

    def __len__(self) -> int:
        with self._lock:
            self._prune_expired_unlocked()
            return len(self._store)
