"""TTL cache for structured JSON GET responses.

Byte blobs go through :class:`~blobcache.cache.store.CacheStore`; decoded
JSON bodies fetched by :class:`~blobcache.client.service_client.ServiceClient`
are small and structured, so they live in a :class:`diskcache.Cache` under
``<cache dir>/responses`` where expiry is handled by diskcache itself.

Keys are SHA-256 hashes of ``URL|sorted_params`` so that identical requests
resolve to the same entry regardless of parameter ordering.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any, Optional

import diskcache

from blobcache.models import ResponseCacheConfig

_MISSING = object()


class ResponseCache:
    """Disk-backed cache of decoded JSON bodies.

    Args:
        cache_dir: Root cache directory; entries go in ``responses/``.
        config: ``enabled`` flag and ``ttl_seconds``.
    """

    def __init__(self, cache_dir: str | Path, config: ResponseCacheConfig) -> None:
        self._config = config
        self._directory = Path(cache_dir) / "responses"
        self._cache: Optional[diskcache.Cache] = None
        if config.enabled:
            self._cache = diskcache.Cache(str(self._directory))

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def lookup(self, url: str, params: Optional[dict] = None) -> tuple[bool, Any]:
        """Return ``(hit, body)``.  A cached ``null`` body is still a hit."""
        if self._cache is None:
            return False, None
        body = self._cache.get(self._make_key(url, params), default=_MISSING)
        if body is _MISSING:
            return False, None
        return True, body

    def store(self, url: str, params: Optional[dict], body: Any) -> None:
        """Remember *body* for ``ttl_seconds``."""
        if self._cache is None:
            return
        self._cache.set(self._make_key(url, params), body, expire=self._config.ttl_seconds)

    def invalidate(self, url: str, params: Optional[dict] = None) -> None:
        """Drop the entry for *url* and *params*, if any."""
        if self._cache is not None:
            self._cache.delete(self._make_key(url, params))

    def clear(self) -> int:
        """Remove all entries; returns how many were removed."""
        if self._cache is None:
            return 0
        return self._cache.clear()

    def stats(self) -> dict[str, Any]:
        """Entry count, directory and TTL (or just ``enabled=False``)."""
        if self._cache is None:
            return {"enabled": False}
        return {
            "enabled": True,
            "size": len(self._cache),
            "directory": str(self._directory),
            "ttl_seconds": self._config.ttl_seconds,
        }

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache`."""
        if self._cache is not None:
            self._cache.close()

    def _make_key(self, url: str, params: Optional[dict]) -> str:
        parts = [url]
        if params:
            parts.append(json.dumps(params, sort_keys=True, default=str))
        return hashlib.sha256("|".join(parts).encode()).hexdigest()
