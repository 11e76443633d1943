"""On-disk blob store: one file per cache key.

Layout::

    <directory>/
        <sha256-hex><ext>                 # one committed entry per key
        .<sha256-hex><ext>.<random>.tmp   # write in progress

No index file is kept.  An entry's size is its file size and its
``created_at`` is the file's modification time, which :meth:`CacheStore.write`
stamps explicitly from the store's clock right after the atomic rename.

The primitives here are synchronous; the coordinator runs them in worker
threads via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import os
import stat
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from blobcache.cache.keys import CacheEntry, CacheKey
from blobcache.config import TEMP_SUFFIX, atomic_writer
from blobcache.exceptions import StorageReadError, StorageWriteError
from blobcache.output import debug, warning


@dataclass(frozen=True)
class StoredBlob:
    """A cache entry together with its payload."""

    entry: CacheEntry
    content: bytes


class CacheStore:
    """Persist and retrieve byte blobs keyed by :class:`CacheKey`.

    Args:
        directory: The cache directory. Created on first write.
        clock: Source of "now" as a POSIX timestamp. Injected by tests to
            control entry ages.

    Example::

        store = CacheStore(Path("/tmp/blobs"))
        entry = store.write(make_cache_key(url), data)
        blob = store.read(entry.key)
    """

    def __init__(self, directory: str | Path, clock: Callable[[], float] = time.time) -> None:
        self._directory = Path(directory)
        self._clock = clock

    @property
    def directory(self) -> Path:
        """The cache directory."""
        return self._directory

    def path_for(self, key: CacheKey) -> Path:
        """Return the payload location for *key*."""
        return self._directory / key.filename

    # ------------------------------------------------------------------ #
    # Primitives
    # ------------------------------------------------------------------ #

    def read(self, key: CacheKey) -> StoredBlob | None:
        """Return the entry for *key* with its bytes, or ``None`` if absent.

        Raises:
            StorageReadError: The file exists but could not be read.
        """
        path = self.path_for(key)
        try:
            with open(path, "rb") as fh:
                st = os.fstat(fh.fileno())
                content = fh.read()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageReadError(f"Cannot read cache entry {path}: {exc}") from exc

        entry = CacheEntry(
            key=key,
            size_bytes=len(content),
            created_at=min(st.st_mtime, self._clock()),
            path=path,
        )
        return StoredBlob(entry=entry, content=content)

    def write(self, key: CacheKey, content: bytes) -> CacheEntry:
        """Persist *content* under *key*, replacing any previous entry.

        The payload is written to a temp file, fsynced, and renamed into
        place, so a reader sees either the old entry or the new one.

        Raises:
            StorageWriteError: The payload could not be written.
        """
        path = self.path_for(key)
        try:
            with atomic_writer(path) as fh:
                fh.write(content)
            now = self._clock()
            os.utime(path, (now, now))
        except OSError as exc:
            raise StorageWriteError(f"Cannot write cache entry {path}: {exc}") from exc

        debug(f"Stored {key.filename} ({len(content)} bytes)")
        return CacheEntry(key=key, size_bytes=len(content), created_at=now, path=path)

    def delete(self, key: CacheKey) -> bool:
        """Remove the entry for *key*.

        Idempotent.  A failure is reported as a warning and swallowed, since
        every entry can be fetched again.

        Returns:
            ``True`` if a file was removed.
        """
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            warning(f"Could not delete cache entry {path.name}: {exc}")
            return False
        debug(f"Deleted {key.filename}")
        return True

    def list_all(self) -> list[CacheEntry]:
        """Enumerate every committed entry. Order is unspecified.

        Temp files, sub-directories and foreign files are skipped, as are
        files that disappear while the directory is being scanned.
        """
        try:
            names = os.listdir(self._directory)
        except FileNotFoundError:
            return []
        except OSError as exc:
            warning(f"Could not list cache directory {self._directory}: {exc}")
            return []

        now = self._clock()
        entries: list[CacheEntry] = []
        for name in names:
            key = CacheKey.from_filename(name)
            if key is None:
                continue
            path = self._directory / name
            try:
                st = path.stat()
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue
            entries.append(
                CacheEntry(
                    key=key,
                    size_bytes=st.st_size,
                    created_at=min(st.st_mtime, now),
                    path=path,
                )
            )
        return entries

    def clear_all(self) -> int:
        """Remove every entry and any leftover temp file.

        Returns:
            The number of committed entries removed.
        """
        removed = 0
        for entry in self.list_all():
            if self.delete(entry.key):
                removed += 1

        try:
            leftovers = [n for n in os.listdir(self._directory) if n.endswith(TEMP_SUFFIX)]
        except OSError:
            leftovers = []
        for name in leftovers:
            try:
                (self._directory / name).unlink()
            except OSError as exc:
                warning(f"Could not delete temp file {name}: {exc}")
        return removed

    def total_size(self) -> int:
        """Sum of ``size_bytes`` across all entries."""
        return sum(e.size_bytes for e in self.list_all())
