"""
Tests for the run-scoped lookup cache.
"""

from peptidedb.persist.cache import LookupCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestLookupCache:
    """Test expiry and invalidation."""

    def test_get_and_set(self):
        cache = LookupCache()
        assert cache.get("jurisdiction", "US") is None
        cache.set("jurisdiction", "US", 1)
        assert cache.get("jurisdiction", "US") == 1
        assert cache.get("use_case", "US") is None
        assert len(cache) == 1

    def test_entries_expire(self):
        clock = FakeClock()
        cache = LookupCache(ttl_seconds=10, clock=clock)
        cache.set("jurisdiction", "US", 1)

        clock.now = 10
        assert cache.get("jurisdiction", "US") == 1
        clock.now = 10.5
        assert cache.get("jurisdiction", "US") is None
        assert len(cache) == 0

    def test_invalidate_namespace(self):
        cache = LookupCache()
        cache.set("jurisdiction", "US", 1)
        cache.set("use_case", "weight-management", 7)

        cache.invalidate("jurisdiction")

        assert cache.get("jurisdiction", "US") is None
        assert cache.get("use_case", "weight-management") == 7

    def test_invalidate_all(self):
        cache = LookupCache()
        cache.set("jurisdiction", "US", 1)
        cache.set("use_case", "weight-management", 7)
        cache.invalidate()
        assert len(cache) == 0
