"""Disk cache for remotely fetched byte blobs.

* :mod:`~blobcache.cache.keys` -- cache keys and entry metadata.
* :mod:`~blobcache.cache.store` -- one file per entry, atomic writes.
* :mod:`~blobcache.cache.eviction` -- oldest-first capacity eviction.
* :mod:`~blobcache.cache.coordinator` -- the get-or-fetch path.
* :mod:`~blobcache.cache.response_cache` -- diskcache-backed TTL cache for
  JSON GET responses.
"""

from blobcache.cache.coordinator import CacheCoordinator
from blobcache.cache.eviction import EvictionPolicy
from blobcache.cache.keys import CacheEntry, CacheKey, infer_extension, make_cache_key
from blobcache.cache.response_cache import ResponseCache
from blobcache.cache.store import CacheStore, StoredBlob

__all__ = [
    "CacheCoordinator",
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "EvictionPolicy",
    "ResponseCache",
    "StoredBlob",
    "infer_extension",
    "make_cache_key",
]
