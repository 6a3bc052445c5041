from __future__ import annotations

import threading
from typing import Optional


class GlyphFallbackCache:
    """Process-wide store of generated glyph images keyed by character.

    Design goals:
    - Append-only for the life of the process; nothing expires.
    - A pending set records characters whose generation is in flight, so a
      character is never requested twice at the same time.
    - Thread-safe for mixed async/threaded usage.
    """

    def __init__(self) -> None:
        self._store: dict[str, bytes] = {}
        self._pending: set[str] = set()
        self._lock = threading.RLock()

    def get(self, char: str) -> Optional[bytes]:
        with self._lock:
            return self._store.get(char)

    def has(self, char: str) -> bool:
        with self._lock:
            return char in self._store

    def put(self, char: str, image: bytes) -> None:
        with self._lock:
            self._store[char] = image
            self._pending.discard(char)

    def is_pending(self, char: str) -> bool:
        with self._lock:
            return char in self._pending

    def pending(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._pending)

    def claim(self, char: str) -> bool:
        """Mark `char` pending unless it is already cached or pending."""
        with self._lock:
            if char in self._store or char in self._pending:
                return False
            self._pending.add(char)
            return True

    def release(self, char: str) -> None:
        with self._lock:
            self._pending.discard(char)

    def discard(self, char: str) -> None:
        """Drop a cached image so the next scan re-probes the character."""
        with self._lock:
            self._store.pop(char, None)

    def snapshot(self) -> dict[str, bytes]:
        with self._lock:
            return dict(self._store)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._pending.clear()

    def __contains__(self, char: object) -> bool:
        with self._lock:
            return char in self._store

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


glyph_cache = GlyphFallbackCache()
