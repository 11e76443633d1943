"""Cache commands -- fetch through the cache and manage its contents.

Registered directly on the root app:

* ``blobcache get`` -- get-or-fetch one identifier.
* ``blobcache clear`` -- delete every cached blob and response.
* ``blobcache stats`` -- summary of the cache directory and settings.
* ``blobcache list`` -- table of entries, oldest first.

Each command resolves the effective configuration with
:func:`~blobcache.config.resolve_config` and drives a
:class:`~blobcache.cache.coordinator.CacheCoordinator` on a fresh event
loop.  :class:`~blobcache.exceptions.BlobcacheError` is reported on stderr
and turned into the matching exit code.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Optional, TypeVar

import typer

from blobcache.cache import CacheCoordinator, ResponseCache
from blobcache.config import atomic_write, get_cache_dir, resolve_config
from blobcache.exceptions import BlobcacheError
from blobcache.models import GlobalConfig
from blobcache.output import error, format_response, info, print_table, success

T = TypeVar("T")


def _run(config: GlobalConfig, action: Callable[[CacheCoordinator], Awaitable[T]]) -> T:
    """Run *action* against a coordinator built from *config*."""

    async def _main() -> T:
        async with CacheCoordinator.from_config(config) as coordinator:
            return await action(coordinator)

    try:
        return asyncio.run(_main())
    except BlobcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KiB", "MiB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GiB"


def _resolve(**overrides: object) -> GlobalConfig:
    try:
        return resolve_config(**overrides)
    except BlobcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def get_command(
    identifier: str = typer.Argument(help="URL, or endpoint relative to the base address."),
    output_file: Optional[Path] = typer.Option(
        None, "-o", "--output", help="Write the bytes to this file."
    ),
    ttl: Optional[float] = typer.Option(None, "--ttl", help="Time-to-live in seconds."),
    max_size: Optional[int] = typer.Option(
        None, "--max-size", help="Cache capacity in bytes."
    ),
    base_address: Optional[str] = typer.Option(
        None, "--base-address", help="Prefix for relative endpoints."
    ),
) -> None:
    """Get a resource from the cache, fetching it when missing or stale.

    Without ``--output`` only a summary is printed.

    Example::

        blobcache get https://cdn.example.com/logo.png -o logo.png
        blobcache get /avatars/42 --base-address https://api.example.com
    """
    config = _resolve(cli_base_address=base_address, cli_ttl=ttl, cli_max_size=max_size)

    data = _run(config, lambda c: c.get_or_fetch(identifier))

    if output_file is not None:
        atomic_write(output_file, data)
        success(f"Wrote {len(data)} bytes to {output_file}")
        return
    format_response({"identifier": identifier, "size_bytes": len(data)})


def clear_command(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Delete every cached blob and cached response.

    Example::

        blobcache clear --force
    """
    config = _resolve()
    if not force:
        if not typer.confirm("Delete all cached entries?"):
            info("Cancelled.")
            raise typer.Exit()

    removed = _run(config, lambda c: c.clear_cache())

    responses = ResponseCache(get_cache_dir(), config.responses)
    try:
        responses.clear()
    finally:
        responses.close()
    success(f"Removed {removed} cached entries.")


def stats_command() -> None:
    """Show cache statistics."""
    config = _resolve()
    stats = _run(config, lambda c: c.stats())

    responses = ResponseCache(get_cache_dir(), config.responses)
    try:
        stats["responses"] = responses.stats()
    finally:
        responses.close()
    format_response(stats)


def list_command() -> None:
    """List cached entries, oldest first."""
    config = _resolve()
    entries = _run(config, lambda c: c.entries())

    if not entries:
        info("Cache is empty.")
        return
    now = time.time()
    rows = [
        [entry.key.filename, _human_size(entry.size_bytes), f"{entry.age(now):.0f}s"]
        for entry in entries
    ]
    print_table(["File", "Size", "Age"], rows, title="Cache entries")
