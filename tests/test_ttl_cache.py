from __future__ import annotations

import threading
import time
import unittest

from nextinbox.services.shared.ttl_cache import TtlCache


class TtlCacheTests(unittest.TestCase):
    def test_concurrent_lookups_share_one_load(self) -> None:
        cache = TtlCache(ttl_seconds=1.0, max_entries=16)
        calls = 0
        calls_lock = threading.Lock()
        results: list[str] = []

        def loader() -> str:
            nonlocal calls
            with calls_lock:
                calls += 1
            time.sleep(0.15)
            return "ok"

        def worker() -> None:
            results.append(cache.cached("token", loader))

        t1 = threading.Thread(target=worker)
        t2 = threading.Thread(target=worker)
        t1.start()
        time.sleep(0.01)
        t2.start()
        t1.join()
        t2.join()

        self.assertEqual(calls, 1, "inflight waiter should not trigger duplicate loader")
        self.assertEqual(results, ["ok", "ok"])

    def test_none_results_are_not_cached(self) -> None:
        cache = TtlCache(ttl_seconds=30, max_entries=4)
        calls: list[int] = []

        def loader() -> None:
            calls.append(1)
            return None

        self.assertIsNone(cache.cached("bad", loader))
        self.assertIsNone(cache.cached("bad", loader))
        self.assertEqual(len(calls), 2)

    def test_entries_expire(self) -> None:
        cache = TtlCache(ttl_seconds=0.05, max_entries=4)
        cache.set("k", "v")
        self.assertEqual(cache.get("k"), "v")
        time.sleep(0.1)
        self.assertIsNone(cache.get("k"))

    def test_oldest_entry_is_evicted_past_capacity(self) -> None:
        cache = TtlCache(ttl_seconds=30, max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        self.assertIsNone(cache.get("b"))
        self.assertEqual((cache.get("a"), cache.get("c")), (1, 3))

    def test_invalidate(self) -> None:
        cache = TtlCache(ttl_seconds=30, max_entries=2)
        cache.set("a", 1)
        cache.invalidate("a")
        self.assertIsNone(cache.get("a"))


if __name__ == "__main__":
    unittest.main()
