"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for blobcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.blobcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- A single :class:`~blobcache.models.GlobalConfig`
  JSON file.
* **Project config** -- An optional ``./blobcache.json`` holding a partial
  config that is layered over the global one.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.

All file writes go through :func:`atomic_writer`, which writes to a hidden
temp file in the target directory and renames it into place, so readers
never observe a half-written file.  The blob store and the download sink use
the same helper.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Optional, Union

from blobcache.exceptions import ConfigError
from blobcache.models import GlobalConfig

_APP_NAME = "blobcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "blobcache.json"
TEMP_SUFFIX = ".tmp"

# Environment variable -> (section, field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "BLOBCACHE_BASE_ADDRESS": ("fetch", "base_address", str),
    "BLOBCACHE_MAX_RETRIES": ("fetch", "max_retries", int),
    "BLOBCACHE_RETRY_DELAY": ("fetch", "base_retry_delay", float),
    "BLOBCACHE_CACHE_DIR": ("cache", "directory", str),
    "BLOBCACHE_TTL": ("cache", "ttl_seconds", float),
    "BLOBCACHE_MAX_SIZE": ("cache", "max_size_bytes", int),
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/blobcache/`` (default ``~/.config/blobcache/``).
    On macOS/Windows: ``~/.blobcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache root directory, creating it if necessary.

    Holds the blob cache (``blobs/``) and the structured response cache
    (``responses/``).  Everything here can be deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/blobcache/`` (default ``~/.cache/blobcache/``).
    On macOS/Windows: ``~/.blobcache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/blobcache/`` (default ``~/.local/share/blobcache/``).
    On macOS/Windows: ``~/.blobcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_blob_dir(config: GlobalConfig) -> Path:
    """Return the blob cache directory configured in *config*.

    Falls back to ``get_cache_dir() / "blobs"`` when no directory is set.
    The directory is not created here; the store creates it on first write.
    """
    if config.cache.directory:
        return Path(config.cache.directory).expanduser()
    return get_cache_dir() / "blobs"


# --- Atomic file writes ---


@contextmanager
def atomic_writer(path: Path) -> Iterator[IO[bytes]]:
    """Open a binary temp file that replaces *path* when the block exits cleanly.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  Its name starts
    with a dot and ends with :data:`TEMP_SUFFIX` so directory listings can
    skip in-progress writes.  On any failure (including
    ``KeyboardInterrupt`` or task cancellation) the temp file is removed and
    *path* is left untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=TEMP_SUFFIX,
        delete=False,
    )
    tmp_path = fd.name
    try:
        yield fd
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        os.replace(tmp_path, path)
    except BaseException:
        fd.close()
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write(path: Path, data: Union[str, bytes]) -> None:
    """Write *data* to *path* atomically (temp file + rename).

    Text is encoded as UTF-8.
    """
    payload = data.encode("utf-8") if isinstance(data, str) else data
    with atomic_writer(path) as fh:
        fh.write(payload)


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~blobcache.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./blobcache.json``.

    The file holds a partial config (for example only ``{"fetch":
    {"base_address": ...}}``) that is merged over the global config.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_overrides() -> dict[str, Any]:
    """Collect ``BLOBCACHE_*`` overrides as a partial config dict."""
    overlay: dict[str, Any] = {}
    for var, (section, field, parser) in _ENV_OVERRIDES.items():
        raw = os.environ.get(var)
        if not raw:
            continue
        try:
            value = parser(raw)
        except ValueError as exc:
            raise ConfigError(f"Invalid value for {var}: {raw!r}") from exc
        overlay.setdefault(section, {})[field] = value
    return overlay


# --- Precedence resolution ---


def resolve_config(
    cli_base_address: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_ttl: Optional[float] = None,
    cli_max_size: Optional[int] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``BLOBCACHE_BASE_ADDRESS``,
           ``BLOBCACHE_CACHE_DIR``, ``BLOBCACHE_TTL``, ``BLOBCACHE_MAX_SIZE``,
           ``BLOBCACHE_MAX_RETRIES``, ``BLOBCACHE_RETRY_DELAY``)
        3. Project config (``./blobcache.json``)
        4. User config (``~/.config/blobcache/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    data = load_global_config().model_dump(mode="json")

    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    data = _deep_merge(data, _env_overrides())

    cli: dict[str, Any] = {}
    if cli_base_address is not None:
        cli.setdefault("fetch", {})["base_address"] = cli_base_address
    if cli_cache_dir is not None:
        cli.setdefault("cache", {})["directory"] = cli_cache_dir
    if cli_ttl is not None:
        cli.setdefault("cache", {})["ttl_seconds"] = cli_ttl
    if cli_max_size is not None:
        cli.setdefault("cache", {})["max_size_bytes"] = cli_max_size
    if cli_format is not None:
        cli.setdefault("output", {})["format"] = cli_format
    data = _deep_merge(data, cli)

    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
