import pytest

from sst_resolve.shared.infrastructure.cache import TTLCache


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire():
    clock = Clock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("k", "v")

    clock.now = 9.9
    assert cache.get("k") == "v"
    clock.now = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_invalidate_one_or_all():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert "a" not in cache
    assert "b" in cache

    cache.invalidate()
    assert len(cache) == 0


def test_oldest_entry_is_evicted_when_full():
    cache = TTLCache(ttl_seconds=60, max_entries=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    assert cache.get("a") is None
    assert cache.get("c") == 3


def test_zero_ttl_disables_caching():
    cache = TTLCache(ttl_seconds=0)
    cache.set("a", 1)
    assert cache.get("a") is None


def test_negative_ttl_is_rejected():
    with pytest.raises(ValueError):
        TTLCache(ttl_seconds=-1)
