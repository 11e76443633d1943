"""The get-or-fetch path.

:class:`CacheCoordinator` ties the pieces together.  For one identifier a
load runs strictly in this order::

    lookup --fresh--> return cached bytes
       |
       +--missing/expired--> fetch --failed--> FetchFailedError
                               |                (or the stale copy, fail-open)
                               +--ok--> evict --> write --> return bytes

Concurrent callers for the same key share a single load (single-flight).
Each load is an :class:`asyncio.Task`; callers await it through
:func:`asyncio.shield` so a cancelled caller only detaches itself.  When the
last caller detaches, the load is cancelled too, which stops any pending
retry backoff.

Disk access runs in worker threads via :func:`asyncio.to_thread`.  Eviction
works on a snapshot of the directory listing, so concurrent loads for
different keys can transiently push the cache above capacity.  That race is
accepted; there is no cross-process locking.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import Any, Optional, TypeVar

from blobcache.cache.eviction import EvictionPolicy
from blobcache.cache.keys import CacheEntry, CacheKey, make_cache_key
from blobcache.cache.store import CacheStore, StoredBlob
from blobcache.client.fetch_client import FetchClient
from blobcache.config import get_blob_dir
from blobcache.exceptions import (
    CacheError,
    FetchFailedError,
    InvalidUsageError,
    StorageReadError,
    StorageWriteError,
)
from blobcache.models import DEFAULT_EXTENSION, DEFAULT_MAX_SIZE_BYTES, DEFAULT_TTL_SECONDS, GlobalConfig
from blobcache.output import debug, warning

T = TypeVar("T")


class _Flight:
    """An in-flight load and the number of callers waiting on it."""

    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Task) -> None:
        self.task = task
        self.waiters = 0


class CacheCoordinator:
    """Serve byte blobs from the disk cache, fetching on miss.

    Args:
        store: Where entries are persisted.
        fetcher: Client used on miss or expiry.  The coordinator owns it and
            closes it in :meth:`aclose`.
        policy: Eviction policy; oldest-first by default.
        ttl: Default time-to-live in seconds.
        max_size_bytes: Default cache capacity in bytes.
        default_extension: Extension for identifiers without a usable one.
        stale_if_error: Serve an expired entry when its refresh fails
            instead of raising.
        clock: Source of "now"; should match the store's clock.

    Example::

        async with CacheCoordinator.from_config(resolve_config()) as cache:
            logo = await cache.get_or_fetch("https://cdn.example.com/logo.png")
    """

    def __init__(
        self,
        store: CacheStore,
        fetcher: FetchClient,
        policy: Optional[EvictionPolicy] = None,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_size_bytes: int = DEFAULT_MAX_SIZE_BYTES,
        default_extension: str = DEFAULT_EXTENSION,
        stale_if_error: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._policy = policy or EvictionPolicy()
        self._ttl = ttl
        self._max_size_bytes = max_size_bytes
        self._default_extension = default_extension
        self._stale_if_error = stale_if_error
        self._clock = clock
        self._inflight: dict[CacheKey, _Flight] = {}
        self._abandoned: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls,
        config: GlobalConfig,
        transport: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> CacheCoordinator:
        """Build a coordinator, its store and its fetch client from *config*.

        *transport* is passed to :class:`FetchClient` (tests use
        :class:`httpx.MockTransport`).
        """
        return cls(
            store=CacheStore(get_blob_dir(config), clock=clock),
            fetcher=FetchClient(config.fetch, transport=transport),
            ttl=config.cache.ttl_seconds,
            max_size_bytes=config.cache.max_size_bytes,
            default_extension=config.cache.default_extension,
            stale_if_error=config.cache.stale_if_error,
            clock=clock,
        )

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def fetcher(self) -> FetchClient:
        return self._fetcher

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> CacheCoordinator:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel outstanding loads and close the fetch client."""
        pending = [flight.task for flight in self._inflight.values()]
        pending.extend(self._abandoned)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._fetcher.aclose()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def get_or_fetch(
        self,
        identifier: str,
        ttl: Optional[float] = None,
        max_size_bytes: Optional[int] = None,
    ) -> bytes:
        """Return the bytes behind *identifier*, from cache when fresh.

        Args:
            identifier: Absolute URL, or an endpoint relative to the fetch
                client's base address.
            ttl: Overrides the default time-to-live for this call.
            max_size_bytes: Overrides the default capacity for this call.

        Raises:
            FetchFailedError: The entry was missing or expired and could not
                be fetched.  The terminal :class:`FetchError` is on ``cause``.
            InvalidUsageError: *identifier* is empty.
        """
        if not identifier:
            raise InvalidUsageError("Identifier must not be empty")
        ttl = self._ttl if ttl is None else ttl
        capacity = self._max_size_bytes if max_size_bytes is None else max_size_bytes
        key = make_cache_key(identifier, self._default_extension)

        flight = self._inflight.get(key)
        if flight is None:
            task = asyncio.create_task(self._load(identifier, key, ttl, capacity))
            flight = _Flight(task)
            self._inflight[key] = flight
            task.add_done_callback(lambda t, k=key: self._finish(k, t))
        else:
            debug(f"Joining in-flight load of {identifier}")

        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        except asyncio.CancelledError:
            if flight.waiters == 1 and not flight.task.done():
                debug(f"Last caller for {identifier} went away, cancelling load")
                # A caller arriving before the task unwinds must start a new load.
                if self._inflight.get(key) is flight:
                    del self._inflight[key]
                self._abandoned.add(flight.task)
                flight.task.cancel()
            raise
        finally:
            flight.waiters -= 1

    async def get_decoded(
        self,
        identifier: str,
        decoder: Callable[[bytes], T],
        ttl: Optional[float] = None,
        max_size_bytes: Optional[int] = None,
    ) -> T:
        """Run *decoder* over the bytes returned by :meth:`get_or_fetch`.

        Decoder exceptions propagate unchanged.
        """
        data = await self.get_or_fetch(identifier, ttl=ttl, max_size_bytes=max_size_bytes)
        return decoder(data)

    async def prefetch(
        self,
        identifiers: Iterable[str],
        concurrency: int = 5,
    ) -> dict[str, bytes | CacheError]:
        """Warm the cache for several identifiers at once.

        At most *concurrency* loads run at the same time.  Failures do not
        stop the batch; they are returned in place of the bytes.  Cancelling
        the caller cancels every outstanding load.
        """
        if concurrency < 1:
            raise InvalidUsageError("concurrency must be at least 1")
        semaphore = asyncio.Semaphore(concurrency)
        results: dict[str, bytes | CacheError] = {}

        async def _one(identifier: str) -> None:
            async with semaphore:
                try:
                    results[identifier] = await self.get_or_fetch(identifier)
                except CacheError as exc:
                    results[identifier] = exc

        await asyncio.gather(*(_one(i) for i in dict.fromkeys(identifiers)))
        return results

    async def clear_cache(self) -> int:
        """Delete every entry; returns how many were removed."""
        removed = await asyncio.to_thread(self._store.clear_all)
        debug(f"Cleared {removed} cache entries")
        return removed

    async def entries(self) -> list[CacheEntry]:
        """Current entries, oldest first."""
        listed = await asyncio.to_thread(self._store.list_all)
        return sorted(listed, key=lambda e: (e.created_at, e.key.filename))

    async def stats(self) -> dict[str, Any]:
        """Summary of the cache directory and settings."""
        listed = await asyncio.to_thread(self._store.list_all)
        return {
            "directory": str(self._store.directory),
            "entries": len(listed),
            "total_bytes": sum(e.size_bytes for e in listed),
            "max_size_bytes": self._max_size_bytes,
            "ttl_seconds": self._ttl,
            "stale_if_error": self._stale_if_error,
            "in_flight": len(self._inflight),
        }

    # ------------------------------------------------------------------ #
    # Load steps
    # ------------------------------------------------------------------ #

    def _finish(self, key: CacheKey, task: asyncio.Task) -> None:
        self._abandoned.discard(task)
        flight = self._inflight.get(key)
        if flight is not None and flight.task is task:
            del self._inflight[key]
        # Mark the outcome as retrieved when every waiter has already left.
        if not task.cancelled():
            task.exception()

    async def _load(self, identifier: str, key: CacheKey, ttl: float, capacity: int) -> bytes:
        now = self._clock()
        cached = await self._read(key)
        stale: Optional[StoredBlob] = None

        if cached is None:
            debug(f"Cache miss for {identifier}")
        else:
            age = cached.entry.age(now)
            if age < ttl:
                debug(f"Cache hit for {identifier} ({age:.0f}s old)")
                return cached.content
            if self._stale_if_error:
                debug(f"Cache entry for {identifier} expired, refreshing")
                stale = cached
            else:
                debug(f"Cache entry for {identifier} expired, deleting")
                await asyncio.to_thread(self._store.delete, key)

        result = await self._fetcher.fetch(identifier)
        if result.error is not None or result.content is None:
            if stale is not None:
                warning(f"Serving stale copy of {identifier}: {result.error}")
                return stale.content
            raise FetchFailedError(identifier, result.error) from result.error

        await self._admit(identifier, key, result.content, capacity)
        return result.content

    async def _read(self, key: CacheKey) -> Optional[StoredBlob]:
        try:
            return await asyncio.to_thread(self._store.read, key)
        except StorageReadError as exc:
            warning(f"{exc}; treating as a miss")
            return None

    async def _admit(self, identifier: str, key: CacheKey, content: bytes, capacity: int) -> None:
        """Evict as needed, then write *content* under *key*."""
        size = len(content)
        if size > capacity:
            debug(f"{identifier} is {size} bytes, larger than the {capacity} byte cache; not storing")
            return

        listed = await asyncio.to_thread(self._store.list_all)
        others = [e for e in listed if e.key != key]
        victims = self._policy.ensure_capacity(others, size, capacity)
        if victims:
            debug(f"Evicting {len(victims)} entries to make room for {size} bytes")
            await asyncio.to_thread(self._delete_all, victims)

        try:
            await asyncio.to_thread(self._store.write, key, content)
        except StorageWriteError as exc:
            warning(f"{exc}; returning uncached bytes")

    def _delete_all(self, keys: list[CacheKey]) -> None:
        for key in keys:
            self._store.delete(key)
