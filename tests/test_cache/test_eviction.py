"""Tests for oldest-first eviction."""

from __future__ import annotations

from pathlib import Path

from blobcache.cache.eviction import EvictionPolicy
from blobcache.cache.keys import CacheEntry, make_cache_key


def _entry(name: str, size: int, created_at: float) -> CacheEntry:
    key = make_cache_key(f"https://cdn.example.com/{name}.png")
    return CacheEntry(key=key, size_bytes=size, created_at=created_at, path=Path(key.filename))


class TestEnsureCapacity:
    def setup_method(self) -> None:
        self.policy = EvictionPolicy()

    def test_no_eviction_when_it_fits(self) -> None:
        entries = [_entry("a", 10, 1.0), _entry("b", 10, 2.0)]
        assert self.policy.ensure_capacity(entries, 10, 30) == []

    def test_exact_fit_needs_no_eviction(self) -> None:
        entries = [_entry("a", 10, 1.0)]
        assert self.policy.ensure_capacity(entries, 20, 30) == []

    def test_oldest_evicted_first(self) -> None:
        t1, t2, t3 = _entry("t1", 10, 1.0), _entry("t2", 10, 2.0), _entry("t3", 10, 3.0)
        victims = self.policy.ensure_capacity([t3, t1, t2], 10, 30)
        assert victims == [t1.key]

    def test_evicts_several_until_fits(self) -> None:
        t1, t2, t3 = _entry("t1", 10, 1.0), _entry("t2", 10, 2.0), _entry("t3", 10, 3.0)
        victims = self.policy.ensure_capacity([t2, t3, t1], 15, 30)
        assert victims == [t1.key, t2.key]

    def test_stops_as_soon_as_it_fits(self) -> None:
        small_old = _entry("old", 50, 1.0)
        newer = _entry("new", 5, 2.0)
        victims = self.policy.ensure_capacity([newer, small_old], 40, 60)
        assert victims == [small_old.key]

    def test_everything_evicted_when_payload_fills_capacity(self) -> None:
        entries = [_entry("a", 5, 1.0), _entry("b", 5, 2.0)]
        victims = self.policy.ensure_capacity(entries, 100, 100)
        assert len(victims) == 2

    def test_ties_broken_by_filename(self) -> None:
        a, b = _entry("a", 10, 5.0), _entry("b", 10, 5.0)
        first = min(a, b, key=lambda e: e.key.filename)
        assert self.policy.ensure_capacity([a, b], 10, 20) == [first.key]
        assert self.policy.ensure_capacity([b, a], 10, 20) == [first.key]

    def test_empty_index(self) -> None:
        assert self.policy.ensure_capacity([], 10, 5) == []
