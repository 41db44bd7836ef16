"""Tests for the analysis cache, fingerprinting and chunking helpers."""

from __future__ import annotations

import pytest

from actionlens.engine.cache import AnalysisCache, fingerprint
from actionlens.engine.chunking import remap_items, split_into_chunks
from actionlens.engine.metrics import MetricsTracker
from actionlens.extraction.models import TextPosition, empty_result
from tests.fakes import make_item


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestFingerprint:
    def test_known_values(self) -> None:
        """Fingerprints carry the text length as a prefix."""
        assert fingerprint("") == "0-0"
        assert fingerprint("abc") == "3-22ci"

    def test_stable_and_order_sensitive(self) -> None:
        """Same text gives the same key; reordered text does not."""
        assert fingerprint("ship the release") == fingerprint("ship the release")
        assert fingerprint("ab") != fingerprint("ba")

    def test_wraps_to_signed_32_bit(self) -> None:
        """Long text keeps the hash within a signed 32-bit range."""
        key = fingerprint("x" * 500)
        length, digest = key.split("-", 1)
        assert length == f"{500:x}"
        assert int(digest, 36) >= -(2**31)


class TestAnalysisCache:
    def test_miss_then_hit(self) -> None:
        """A stored result is returned for the same key."""
        cache = AnalysisCache()
        result = empty_result(12)
        assert cache.get("k") is None
        cache.put("k", result)
        assert cache.get("k") is result
        assert "k" in cache
        assert len(cache) == 1

    def test_entries_expire_after_ttl(self) -> None:
        """Entries older than the TTL are treated as misses."""
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=300, clock=clock)
        cache.put("k", empty_result())

        clock.now = 300.0
        assert cache.get("k") is not None

        clock.now = 300.5
        assert cache.get("k") is None
        assert "k" not in cache

    def test_least_frequently_used_is_evicted(self) -> None:
        """The entry with the fewest hits is evicted first."""
        cache = AnalysisCache(max_entries=2)
        cache.put("a", empty_result())
        cache.put("b", empty_result())
        cache.get("a")

        cache.put("c", empty_result())

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache

    def test_access_count_ties_evict_oldest(self) -> None:
        """Among equally used entries the oldest goes first."""
        cache = AnalysisCache(max_entries=2)
        cache.put("a", empty_result())
        cache.put("b", empty_result())

        cache.put("c", empty_result())

        assert "a" not in cache
        assert "b" in cache
        assert "c" in cache

    def test_expired_entries_are_purged_before_eviction(self) -> None:
        """Expired entries make room before any live entry is evicted."""
        clock = FakeClock()
        cache = AnalysisCache(max_entries=2, ttl_seconds=300, clock=clock)
        cache.put("old", empty_result())
        clock.now = 200.0
        cache.put("recent", empty_result())
        for _ in range(3):
            cache.get("recent")

        clock.now = 350.0
        cache.put("new", empty_result())

        assert "old" not in cache
        assert "recent" in cache
        assert "new" in cache

    def test_overwrite_does_not_evict(self) -> None:
        """Re-storing an existing key does not count against capacity."""
        cache = AnalysisCache(max_entries=1)
        cache.put("a", empty_result())
        replacement = empty_result(5)
        cache.put("a", replacement)
        assert len(cache) == 1
        assert cache.get("a") is replacement

    def test_clear(self) -> None:
        cache = AnalysisCache()
        cache.put("a", empty_result())
        cache.clear()
        assert len(cache) == 0


class TestChunking:
    def test_slices_are_contiguous(self) -> None:
        """Chunks cover the whole text with correct offsets."""
        text = "a" * 4500
        chunks = split_into_chunks(text, 2000)
        assert [c.offset for c in chunks] == [0, 2000, 4000]
        assert [len(c.text) for c in chunks] == [2000, 2000, 500]
        assert "".join(c.text for c in chunks) == text

    def test_invalid_size(self) -> None:
        """A non-positive chunk size is rejected."""
        with pytest.raises(ValueError):
            split_into_chunks("abc", 0)

    def test_remap_shifts_positions(self) -> None:
        """Chunk-relative positions are shifted by the chunk offset."""
        items = remap_items([make_item("deploy", start=10)], offset=6000)
        assert items[0].text_position == TextPosition(6010, 6016)


class TestMetricsTracker:
    def test_rates(self) -> None:
        """Hit and error rates are computed over all analyses."""
        tracker = MetricsTracker()
        tracker.record(100.0, cache_hit=False)
        tracker.record(1.0, cache_hit=True)
        tracker.record_error(50.0)
        tracker.record_ai_fallback()

        snapshot = tracker.snapshot()
        assert snapshot.total_analyses == 3
        assert snapshot.cache_hits == 1
        assert snapshot.cache_hit_rate == pytest.approx(1 / 3)
        assert snapshot.error_rate == pytest.approx(1 / 3)
        assert snapshot.average_analysis_time_ms == pytest.approx(75.0)
        assert snapshot.ai_fallbacks == 1

    def test_empty_snapshot(self) -> None:
        """A fresh tracker reports zeros rather than dividing by zero."""
        snapshot = MetricsTracker().snapshot()
        assert snapshot.total_analyses == 0
        assert snapshot.cache_hit_rate == 0.0
