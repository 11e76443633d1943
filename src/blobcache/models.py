"""Pydantic configuration models shared across blobcache.

These are serialised as JSON in the user's config directory (see
:mod:`blobcache.config`) and handed to the components at construction
time:

* :class:`FetchConfig` -- the HTTP layer (base address, timeout, retries).
* :class:`CacheConfig` -- the blob cache (directory, TTL, capacity).
* :class:`ResponseCacheConfig` -- the TTL cache for structured JSON GETs.
* :class:`OutputConfig` -- CLI output preferences.
* :class:`GlobalConfig` -- the four sections together.
"""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60
DEFAULT_MAX_SIZE_BYTES = 100 * 1024 * 1024
DEFAULT_EXTENSION = ".img"


class FetchConfig(BaseModel):
    """HTTP settings applied to every fetch."""

    base_address: Optional[str] = Field(
        default=None, description="Prefix for relative endpoints"
    )
    timeout: float = Field(default=30.0, gt=0, description="Per-attempt timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Total attempts per fetch")
    base_retry_delay: float = Field(
        default=0.2, ge=0, description="Delay before the first retry in seconds"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(default="blobcache/0.1", description="User-Agent header")


class CacheConfig(BaseModel):
    """Blob cache settings."""

    directory: Optional[str] = Field(
        default=None, description="Cache directory (defaults to <cache dir>/blobs)"
    )
    ttl_seconds: float = Field(
        default=DEFAULT_TTL_SECONDS, gt=0, description="Entry time-to-live in seconds"
    )
    max_size_bytes: int = Field(
        default=DEFAULT_MAX_SIZE_BYTES, ge=0, description="Capacity of the cache directory"
    )
    default_extension: str = Field(
        default=DEFAULT_EXTENSION, description="Extension used when none can be inferred"
    )
    stale_if_error: bool = Field(
        default=False, description="Serve an expired copy when the refresh fails"
    )

    @field_validator("default_extension")
    @classmethod
    def _dotted(cls, v: str) -> str:
        if not re.match(r"^\.[a-z0-9]{1,10}$", v):
            raise ValueError("default_extension must look like '.img'")
        return v


class ResponseCacheConfig(BaseModel):
    """Structured JSON response cache settings."""

    enabled: bool = Field(default=True, description="Enable response caching")
    ttl_seconds: int = Field(default=300, description="Cache TTL in seconds")


class OutputConfig(BaseModel):
    """Default output format preferences."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/blobcache/config.json``.

    Loaded and saved by :func:`~blobcache.config.load_global_config` and
    :func:`~blobcache.config.save_global_config`.  Values here have the
    lowest precedence; see :func:`~blobcache.config.resolve_config`.
    """

    fetch: FetchConfig = Field(default_factory=FetchConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    responses: ResponseCacheConfig = Field(default_factory=ResponseCacheConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
