import hashlib
import threading

import pytest
from sqlgateway.cache import ResultCache, fingerprint


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(ttl_seconds=300, clock=clock)


ROWS = [{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}]


class TestFingerprint:
    """Test query fingerprinting."""

    def test_deterministic(self):
        assert fingerprint("SELECT 1") == fingerprint("SELECT 1")

    def test_md5_hex_digest(self):
        assert fingerprint("SELECT 1") == hashlib.md5(b"SELECT 1").hexdigest()

    def test_no_whitespace_normalization(self):
        assert fingerprint("SELECT 1") != fingerprint("SELECT  1")
        assert fingerprint("select 1") != fingerprint("SELECT 1")


class TestGetPut:
    """Test cache reads and writes."""

    def test_miss_when_empty(self, cache):
        assert cache.get("abc", "db-1") is None

    def test_hit_after_put(self, cache):
        cache.put("abc", "db-1", ROWS, 2, 15)
        entry = cache.get("abc", "db-1")

        assert entry is not None
        assert entry.rows == ROWS
        assert entry.row_count == 2
        assert entry.elapsed_ms == 15
        assert entry.fingerprint == "abc"
        assert entry.database_id == "db-1"

    def test_databases_never_share_entries(self, cache):
        cache.put("abc", "db-1", ROWS, 2, 15)
        assert cache.get("abc", "db-2") is None

    def test_last_write_wins(self, cache):
        cache.put("abc", "db-1", ROWS, 2, 15)
        cache.put("abc", "db-1", [{"id": 3}], 1, 7)

        entry = cache.get("abc", "db-1")
        assert entry.rows == [{"id": 3}]
        assert entry.row_count == 1
        assert len(cache) == 1


class TestExpiry:
    """Test time-based staleness."""

    def test_fresh_just_before_window(self, cache, clock):
        cache.put("abc", "db-1", ROWS, 2, 15)
        clock.advance(299.9)
        assert cache.get("abc", "db-1") is not None

    def test_expired_at_window(self, cache, clock):
        cache.put("abc", "db-1", ROWS, 2, 15)
        clock.advance(300)
        assert cache.get("abc", "db-1") is None

    def test_expired_entry_not_evicted_by_get(self, cache, clock):
        cache.put("abc", "db-1", ROWS, 2, 15)
        clock.advance(301)
        cache.get("abc", "db-1")
        assert len(cache) == 1

    def test_put_refreshes_expired_entry(self, cache, clock):
        cache.put("abc", "db-1", ROWS, 2, 15)
        clock.advance(400)
        cache.put("abc", "db-1", ROWS, 2, 9)
        assert cache.get("abc", "db-1").elapsed_ms == 9

    def test_purge_expired(self, cache, clock):
        cache.put("old", "db-1", ROWS, 2, 15)
        clock.advance(200)
        cache.put("new", "db-1", ROWS, 2, 15)
        clock.advance(150)

        assert cache.purge_expired() == 1
        assert cache.get("new", "db-1") is not None
        assert len(cache) == 1

    def test_puts_sweep_expired_keys(self, clock):
        cache = ResultCache(ttl_seconds=300, clock=clock, sweep_every=3)
        cache.put("a", "db-1", ROWS, 2, 1)
        cache.put("b", "db-1", ROWS, 2, 1)
        clock.advance(301)

        cache.put("c", "db-1", ROWS, 2, 1)

        assert len(cache) == 1
        assert cache.get("c", "db-1") is not None

    def test_no_sweep_before_interval(self, clock):
        cache = ResultCache(ttl_seconds=300, clock=clock, sweep_every=3)
        cache.put("a", "db-1", ROWS, 2, 1)
        clock.advance(301)

        cache.put("b", "db-1", ROWS, 2, 1)

        assert len(cache) == 2

    def test_distinct_queries_stay_bounded(self, clock):
        cache = ResultCache(ttl_seconds=300, clock=clock, sweep_every=10)
        for n in range(1000):
            cache.put(f"q{n}", "db-1", ROWS, 2, 1)
            clock.advance(60)

        # Only entries younger than the window (plus at most one sweep interval) remain
        assert len(cache) <= 5 + 10


class TestConcurrency:
    """Test concurrent writers."""

    def test_concurrent_puts_leave_a_complete_entry(self, cache):
        def writer(n):
            rows = [{"writer": n}]
            for _ in range(200):
                cache.put("abc", "db-1", rows, 1, n)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        entry = cache.get("abc", "db-1")
        assert entry.rows == [{"writer": entry.elapsed_ms}]
