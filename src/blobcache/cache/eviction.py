"""Capacity-driven eviction, oldest entry first."""

from __future__ import annotations

from collections.abc import Iterable

from blobcache.cache.keys import CacheEntry, CacheKey


class EvictionPolicy:
    """Decide which entries to drop so an incoming payload fits.

    The policy is advisory: it only reports victims.  The coordinator
    performs the deletions and carries on if some of them fail, in which
    case the following write may overshoot the capacity slightly.
    """

    def ensure_capacity(
        self,
        entries: Iterable[CacheEntry],
        incoming_size: int,
        max_capacity: int,
    ) -> list[CacheKey]:
        """Return the keys to delete before writing *incoming_size* bytes.

        Entries are taken in ascending ``created_at`` order (ties broken by
        file name) until ``total - removed + incoming_size <= max_capacity``
        or nothing is left.

        Args:
            entries: Snapshot of the current cache index.
            incoming_size: Size of the payload about to be written.
            max_capacity: Capacity of the cache in bytes.

        Returns:
            Victim keys, oldest first.  Empty when no eviction is needed.
        """
        snapshot = list(entries)
        total = sum(e.size_bytes for e in snapshot)
        if total + incoming_size <= max_capacity:
            return []

        victims: list[CacheKey] = []
        for entry in sorted(snapshot, key=lambda e: (e.created_at, e.key.filename)):
            if total + incoming_size <= max_capacity:
                break
            victims.append(entry.key)
            total -= entry.size_bytes
        return victims
