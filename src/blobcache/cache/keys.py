"""Cache keys and entry metadata.

A :class:`CacheKey` names the cached copy of one remote resource: the
SHA-256 hex digest of the identifier string plus a best-effort file
extension taken from the identifier's URL path.  The same identifier always
yields the same key, and the key doubles as the on-disk file name, so no
separate index is needed to map identifiers to files.
"""

from __future__ import annotations

import hashlib
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

from blobcache.models import DEFAULT_EXTENSION

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,10}$")
_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


@dataclass(frozen=True, order=True)
class CacheKey:
    """Deterministic name of a cached resource.

    Attributes:
        digest: SHA-256 hex digest of the identifier.
        extension: Lower-case extension including the dot (e.g. ``.png``).
    """

    digest: str
    extension: str = DEFAULT_EXTENSION

    @property
    def filename(self) -> str:
        """File name of the entry inside the cache directory."""
        return f"{self.digest}{self.extension}"

    @classmethod
    def from_filename(cls, name: str) -> CacheKey | None:
        """Rebuild a key from a cache file name, or ``None`` if *name* is not one."""
        digest, dot, ext = name.partition(".")
        if not dot or not _DIGEST_RE.match(digest):
            return None
        extension = f".{ext}"
        if not _EXTENSION_RE.match(extension):
            return None
        return cls(digest=digest, extension=extension)

    def __str__(self) -> str:
        return self.filename


@dataclass(frozen=True)
class CacheEntry:
    """Metadata of one persisted entry.

    Attributes:
        key: The entry's cache key.
        size_bytes: Payload size.
        created_at: POSIX timestamp stamped at write time.
        path: Location of the payload on disk.
    """

    key: CacheKey
    size_bytes: int
    created_at: float
    path: Path

    def age(self, now: float) -> float:
        """Seconds elapsed since the entry was written (never negative)."""
        return max(0.0, now - self.created_at)


def infer_extension(identifier: str, default: str = DEFAULT_EXTENSION) -> str:
    """Infer a file extension from the path component of *identifier*.

    The query string and fragment are ignored.  Anything that is not one to
    ten alphanumerics after the final dot falls back to *default*.

    Example::

        >>> infer_extension("https://cdn.example.com/a/logo.PNG?v=3")
        '.png'
        >>> infer_extension("https://cdn.example.com/avatar")
        '.img'
    """
    path = urlsplit(identifier).path
    ext = posixpath.splitext(posixpath.basename(path))[1].lower()
    if _EXTENSION_RE.match(ext):
        return ext
    return default


def make_cache_key(identifier: str, default_extension: str = DEFAULT_EXTENSION) -> CacheKey:
    """Derive the :class:`CacheKey` for *identifier*."""
    digest = hashlib.sha256(identifier.encode("utf-8")).hexdigest()
    return CacheKey(digest=digest, extension=infer_extension(identifier, default_extension))
