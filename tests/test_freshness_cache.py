import unittest
from datetime import timedelta

from _fakes import FakeClock

from nasa_gateway.cache import MemoryFreshnessCache, SqliteFreshnessCache
from nasa_gateway.store import SqliteStore

TTL = timedelta(hours=6)


class MemoryFreshnessCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.cache = MemoryFreshnessCache(clock=self.clock)

    def test_missing_key_is_not_fresh(self) -> None:
        self.assertIsNone(self.cache.get("apod"))
        self.assertFalse(self.cache.is_fresh("apod", TTL))

    def test_fresh_just_before_ttl_and_stale_at_ttl(self) -> None:
        self.cache.put("apod", [1, 2, 3])

        self.clock.advance(hours=6, microseconds=-1)
        self.assertTrue(self.cache.is_fresh("apod", TTL))

        self.clock.advance(microseconds=1)
        self.assertFalse(self.cache.is_fresh("apod", TTL))
        self.assertIsNone(self.cache.get_fresh("apod", TTL))
        # Stale entries are kept, only superseded by the next put.
        self.assertEqual(self.cache.get("apod").payload, [1, 2, 3])

    def test_put_overwrites_and_restarts_the_clock(self) -> None:
        self.cache.put("neo", "first")
        self.clock.advance(hours=7)
        self.cache.put("neo", "second")

        entry = self.cache.get_fresh("neo", TTL)
        self.assertIsNotNone(entry)
        self.assertEqual(entry.payload, "second")
        self.assertEqual(entry.cached_at, self.clock.current)
        self.assertEqual(len(self.cache), 1)


class SqliteFreshnessCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.store = SqliteStore(":memory:")
        self.cache = SqliteFreshnessCache(self.store, clock=self.clock)

    def tearDown(self) -> None:
        self.store.close()

    def test_round_trips_payload_and_timestamp(self) -> None:
        self.cache.put("rovers:curiosity", {"sols": [1, 2]})

        entry = self.cache.get("rovers:curiosity")
        self.assertEqual(entry.payload, {"sols": [1, 2]})
        self.assertEqual(entry.cached_at, self.clock.current)

    def test_expires_after_ttl(self) -> None:
        self.cache.put("key", "value")
        self.clock.advance(hours=5, minutes=59)
        self.assertTrue(self.cache.is_fresh("key", TTL))
        self.clock.advance(minutes=1)
        self.assertFalse(self.cache.is_fresh("key", TTL))


if __name__ == "__main__":
    unittest.main()
