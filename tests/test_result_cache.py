"""Tests for the FIFO, TTL-bounded result cache."""

from __future__ import annotations

import threading

import pytest

from contentguard.ml.aggregator import Verdict, VerdictDetails
from contentguard.ml.nsfw_classifier import ClassProbability
from contentguard.ml.result_cache import ResultCache

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _verdict(safe: bool = True) -> Verdict:
    return Verdict(
        categories=(),
        overall_safe=safe,
        warnings=(),
        details=VerdictDetails(nsfw=(), violence=(), drugs=(), weapons=()),
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> ResultCache:
    return ResultCache(ttl_seconds=300.0, max_entries=10, clock=clock)


# ---------------------------------------------------------------------------
# Basic behaviour
# ---------------------------------------------------------------------------


class TestResultCache:
    def test_miss_on_empty(self, cache: ResultCache) -> None:
        assert cache.get("file:///a.jpg") is None

    def test_set_then_get(self, cache: ResultCache) -> None:
        verdict = _verdict()
        predictions = [ClassProbability("Neutral", 0.9)]
        cache.set("file:///a.jpg", verdict, predictions)

        entry = cache.get("file:///a.jpg")
        assert entry is not None
        assert entry.verdict is verdict
        assert entry.predictions == (ClassProbability("Neutral", 0.9),)
        assert entry.created_at == 0.0

    def test_keys_are_not_normalized(self, cache: ResultCache) -> None:
        cache.set("file:///a.jpg", _verdict())
        assert cache.get("file:///A.jpg") is None
        assert cache.get("file:///a.jpg ") is None

    def test_clear(self, cache: ResultCache) -> None:
        cache.set("a", _verdict())
        cache.set("b", _verdict())
        cache.clear()
        assert len(cache) == 0
        assert cache.get("a") is None

    def test_invalid_construction(self) -> None:
        with pytest.raises(ValueError, match="ttl_seconds"):
            ResultCache(ttl_seconds=0)
        with pytest.raises(ValueError, match="max_entries"):
            ResultCache(max_entries=0)


# ---------------------------------------------------------------------------
# TTL
# ---------------------------------------------------------------------------


class TestResultCacheExpiry:
    def test_hit_just_before_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.set("a", _verdict())
        clock.now = 299.999
        assert cache.get("a") is not None

    def test_miss_at_ttl_and_entry_removed(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.set("a", _verdict())
        clock.now = 300.0
        assert "a" in cache
        assert cache.get("a") is None
        assert "a" not in cache
        assert len(cache) == 0

    def test_miss_after_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.set("a", _verdict())
        clock.now = 1_000.0
        assert cache.get("a") is None

    def test_reset_key_refreshes_timestamp(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.set("a", _verdict())
        clock.now = 200.0
        cache.set("a", _verdict(safe=False))
        clock.now = 400.0
        entry = cache.get("a")
        assert entry is not None
        assert entry.verdict.overall_safe is False


# ---------------------------------------------------------------------------
# Capacity
# ---------------------------------------------------------------------------


class TestResultCacheEviction:
    def test_eleventh_insert_evicts_first(self, cache: ResultCache) -> None:
        for i in range(10):
            cache.set(f"key-{i}", _verdict())
        cache.set("key-10", _verdict())

        assert len(cache) == 10
        assert "key-0" not in cache
        assert "key-1" in cache
        assert "key-10" in cache

    def test_fifo_not_lru(self, cache: ResultCache) -> None:
        for i in range(10):
            cache.set(f"key-{i}", _verdict())
        # Reading the oldest entry must not protect it.
        assert cache.get("key-0") is not None
        cache.set("key-10", _verdict())

        assert cache.get("key-0") is None
        assert cache.get("key-1") is not None

    def test_reset_existing_key_keeps_position(self, cache: ResultCache) -> None:
        for i in range(3):
            cache.set(f"key-{i}", _verdict())
        cache.set("key-0", _verdict(safe=False))
        assert cache.keys() == ["key-0", "key-1", "key-2"]

    def test_reset_existing_key_when_full_still_evicts_oldest(self, clock: FakeClock) -> None:
        small = ResultCache(ttl_seconds=300.0, max_entries=2, clock=clock)
        small.set("a", _verdict())
        small.set("b", _verdict())
        small.set("b", _verdict(safe=False))
        assert small.keys() == ["b"]

    def test_expired_entries_still_count_until_looked_up(self, clock: FakeClock) -> None:
        small = ResultCache(ttl_seconds=10.0, max_entries=2, clock=clock)
        small.set("a", _verdict())
        small.set("b", _verdict())
        clock.now = 50.0
        small.set("c", _verdict())
        assert small.keys() == ["b", "c"]

    def test_concurrent_sets_never_exceed_capacity(self) -> None:
        cache = ResultCache(ttl_seconds=300.0, max_entries=10)
        barrier = threading.Barrier(8)
        sizes: list[int] = []
        sizes_lock = threading.Lock()

        def writer(worker: int) -> None:
            barrier.wait()
            for i in range(100):
                cache.set(f"{worker}-{i}", _verdict())
                size = len(cache)
                with sizes_lock:
                    sizes.append(size)

        threads = [threading.Thread(target=writer, args=(w,)) for w in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert max(sizes) <= 10
        stats = cache.stats()
        assert stats.size == 10
        assert stats.evictions == 790


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestResultCacheStats:
    def test_counters(self, cache: ResultCache, clock: FakeClock) -> None:
        cache.set("a", _verdict())
        cache.get("a")
        cache.get("b")
        clock.now = 301.0
        cache.get("a")

        stats = cache.stats()
        assert stats.size == 0
        assert stats.max_size == 10
        assert stats.hits == 1
        assert stats.misses == 2
        assert stats.evictions == 0
