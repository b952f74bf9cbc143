"""
Tests for the TTL cache.
"""

import pytest

from news_rag.query.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(clock=clock)


class TestTTLCache:
    """Test expiry and basic operations."""

    def test_get_before_expiry(self, cache, clock):
        cache.set_with_expiry("session:1", ["hello"], 60)
        clock.now += 59

        assert cache.get("session:1") == ["hello"]

    def test_expired_entry_is_gone(self, cache, clock):
        cache.set_with_expiry("session:1", ["hello"], 60)
        clock.now += 60

        assert cache.get("session:1") is None
        assert len(cache) == 0

    def test_missing_key(self, cache):
        assert cache.get("nope") is None

    def test_overwrite_resets_expiry(self, cache, clock):
        cache.set_with_expiry("k", "old", 10)
        clock.now += 8
        cache.set_with_expiry("k", "new", 10)
        clock.now += 8

        assert cache.get("k") == "new"

    def test_delete(self, cache):
        cache.set_with_expiry("k", "v", 10)
        cache.delete("k")
        cache.delete("never-set")

        assert cache.get("k") is None

    def test_len_counts_live_entries(self, cache, clock):
        cache.set_with_expiry("short", 1, 5)
        cache.set_with_expiry("long", 2, 50)
        clock.now += 10

        assert len(cache) == 1

    def test_non_positive_ttl(self, cache):
        with pytest.raises(ValueError):
            cache.set_with_expiry("k", "v", 0)

    def test_write_drops_expired_entries(self, cache, clock):
        cache.set_with_expiry("session:old", ["stale"], 5)
        clock.now += 10

        cache.set_with_expiry("session:new", ["fresh"], 5)

        assert "session:old" not in cache._entries
        assert list(cache._entries) == ["session:new"]

    def test_values_are_copied_in_and_out(self, cache):
        messages = [{'role': 'user', 'content': 'Hi'}]
        cache.set_with_expiry("session:1", messages, 60)
        messages[0]['content'] = 'changed before read'

        cached = cache.get("session:1")
        cached[0]['content'] = 'changed after read'
        cached.append({'role': 'assistant', 'content': 'extra'})

        assert cache.get("session:1") == [{'role': 'user', 'content': 'Hi'}]
