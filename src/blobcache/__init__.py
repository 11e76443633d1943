"""blobcache -- a local disk cache for remotely fetched binary resources.

A caller asks for the bytes behind a remote identifier (a URL, or an
endpoint relative to a configured base address).  The cache serves a fresh
copy from disk when it has one, otherwise fetches it over HTTP with bounded
retries and exponential backoff, makes room under the configured capacity by
evicting the oldest entries, and stores the result atomically.

Typical use::

    from blobcache import CacheCoordinator, load_global_config

    async with CacheCoordinator.from_config(load_global_config()) as cache:
        data = await cache.get_or_fetch("https://example.com/logo.png")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic configuration models.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting and diagnostics with Rich support.
    cache: Keys, on-disk store, eviction policy and the coordinator.
    client: Retrying fetch client and structured service client.
"""

__version__ = "0.1.0"

from blobcache.cache import CacheCoordinator, CacheEntry, CacheKey, CacheStore, EvictionPolicy  # noqa: E402
from blobcache.client import FetchClient, FetchResult, ServiceClient  # noqa: E402
from blobcache.config import load_global_config, resolve_config  # noqa: E402

__all__ = [
    "__version__",
    "CacheCoordinator",
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "EvictionPolicy",
    "FetchClient",
    "FetchResult",
    "ServiceClient",
    "load_global_config",
    "resolve_config",
]
