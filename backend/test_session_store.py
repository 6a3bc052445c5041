from __future__ import annotations

import time
import unittest
from unittest.mock import Mock

from backend.session_store import SessionStore


class TestSessionStore(unittest.TestCase):
    def test_idle_expiry_closes_session(self) -> None:
        on_evict = Mock()
        store = SessionStore(ttl=1, max_items=10, on_evict=on_evict)
        store.set("k", "controller")
        self.assertEqual(store.get("k"), "controller")
        time.sleep(1.1)
        self.assertIsNone(store.get("k"))
        on_evict.assert_called_once_with("controller")

    def test_access_slides_expiry(self) -> None:
        store = SessionStore(ttl=1, max_items=10)
        store.set("k", 1)
        time.sleep(0.6)
        self.assertEqual(store.get("k"), 1)
        time.sleep(0.6)
        self.assertEqual(store.get("k"), 1)

    def test_lru_eviction_when_capacity_exceeded(self) -> None:
        evicted = []
        store = SessionStore(ttl=60, max_items=2, on_evict=evicted.append)
        store.set("a", 1)
        store.set("b", 2)
        store.set("c", 3)
        self.assertIsNone(store.get("a"))
        self.assertEqual(store.get("b"), 2)
        self.assertEqual(store.get("c"), 3)
        self.assertEqual(evicted, [1])

    def test_get_refreshes_lru_order(self) -> None:
        store = SessionStore(ttl=60, max_items=2)
        store.set("a", 1)
        store.set("b", 2)
        _ = store.get("a")
        store.set("c", 3)
        self.assertEqual(store.get("a"), 1)
        self.assertIsNone(store.get("b"))

    def test_drop_and_clear(self) -> None:
        evicted = []
        store = SessionStore(ttl=60, max_items=5, on_evict=evicted.append)
        store.set("a", 1)
        store.set("b", 2)
        self.assertTrue(store.drop("a"))
        self.assertFalse(store.drop("a"))
        store.clear()
        self.assertEqual(len(store), 0)
        self.assertEqual(evicted, [1, 2])


if __name__ == "__main__":
    unittest.main()
