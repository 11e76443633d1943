"""End-to-end tests for the blobcache CLI."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from blobcache.app import app
from blobcache.cache import CacheCoordinator
from blobcache.config import get_config_dir, load_global_config
from blobcache.exit_codes import EXIT_CLIENT_ERROR, EXIT_INVALID_USAGE

URL = "https://cdn.example.com/logo.png"


@pytest.fixture()
def mock_http(monkeypatch: pytest.MonkeyPatch):
    """Route every coordinator built by the CLI through a MockTransport."""
    requests: list[httpx.Request] = []
    bodies: dict[str, bytes] = {URL: b"PNGDATA"}

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        body = bodies.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    original = CacheCoordinator.from_config.__func__

    def from_config(cls, config, transport=None, **kwargs):
        return original(cls, config, transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(CacheCoordinator, "from_config", classmethod(from_config))
    return requests


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "blobcache" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "get" in result.output


class TestGet:
    def test_get_writes_output_file(self, cli_runner, isolated_config: Path, mock_http) -> None:
        out = isolated_config / "logo.png"
        result = cli_runner.invoke(app, ["get", URL, "-o", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == b"PNGDATA"

    def test_second_get_is_served_from_cache(self, cli_runner, isolated_config: Path, mock_http) -> None:
        cli_runner.invoke(app, ["get", URL])
        result = cli_runner.invoke(app, ["--json", "get", URL])
        assert result.exit_code == 0, result.output
        assert len(mock_http) == 1
        assert json.loads(result.stdout) == {"identifier": URL, "size_bytes": 7}

    def test_get_missing_exits_with_client_error(self, cli_runner, isolated_config: Path, mock_http) -> None:
        result = cli_runner.invoke(app, ["get", "https://cdn.example.com/nope.png"])
        assert result.exit_code == EXIT_CLIENT_ERROR
        assert "404" in result.output

    def test_get_relative_with_base_address(self, cli_runner, isolated_config: Path, mock_http) -> None:
        result = cli_runner.invoke(
            app, ["get", "/logo.png", "--base-address", "https://cdn.example.com"]
        )
        assert result.exit_code == 0, result.output
        assert str(mock_http[0].url) == URL


class TestCacheManagement:
    def test_stats_and_list(self, cli_runner, isolated_config: Path, mock_http) -> None:
        cli_runner.invoke(app, ["get", URL])

        stats = cli_runner.invoke(app, ["--json", "stats"])
        assert stats.exit_code == 0, stats.output
        data = json.loads(stats.stdout)
        assert data["entries"] == 1
        assert data["total_bytes"] == 7
        assert data["responses"]["enabled"] is True

        listing = cli_runner.invoke(app, ["--json", "list"])
        rows = json.loads(listing.stdout)
        assert len(rows) == 1
        assert rows[0]["File"].endswith(".png")

    def test_clear_with_force(self, cli_runner, isolated_config: Path, mock_http) -> None:
        cli_runner.invoke(app, ["get", URL])
        result = cli_runner.invoke(app, ["clear", "--force"])
        assert result.exit_code == 0, result.output
        assert "Removed 1" in result.output

        stats = cli_runner.invoke(app, ["--json", "stats"])
        assert json.loads(stats.stdout)["entries"] == 0

    def test_clear_declined(self, cli_runner, isolated_config: Path, mock_http) -> None:
        cli_runner.invoke(app, ["get", URL])
        result = cli_runner.invoke(app, ["clear"], input="n\n")
        assert "Cancelled" in result.output
        stats = cli_runner.invoke(app, ["--json", "stats"])
        assert json.loads(stats.stdout)["entries"] == 1

    def test_list_empty(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "empty" in result.output


class TestConfigCommands:
    def test_set_and_show(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.max_size_bytes", "4096"])
        assert result.exit_code == 0, result.output
        assert load_global_config().cache.max_size_bytes == 4096

        shown = cli_runner.invoke(app, ["--json", "config", "show"])
        assert json.loads(shown.stdout)["cache"]["max_size_bytes"] == 4096

    def test_set_bool_and_null(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.stale_if_error", "true"])
        cli_runner.invoke(app, ["config", "set", "fetch.base_address", "https://x.example"])
        cli_runner.invoke(app, ["config", "set", "fetch.base_address", "null"])
        config = load_global_config()
        assert config.cache.stale_if_error is True
        assert config.fetch.base_address is None

    def test_unknown_key(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.colour", "blue"])
        assert result.exit_code == EXIT_INVALID_USAGE

    def test_invalid_value(self, cli_runner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["config", "set", "fetch.max_retries", "zero"])
        assert result.exit_code == EXIT_INVALID_USAGE
        assert not (get_config_dir() / "config.json").exists()

    def test_effective_config_includes_env(self, cli_runner, isolated_config: Path, monkeypatch) -> None:
        monkeypatch.setenv("BLOBCACHE_TTL", "42")
        shown = cli_runner.invoke(app, ["--json", "config", "show", "--effective"])
        assert json.loads(shown.stdout)["cache"]["ttl_seconds"] == 42

    def test_reset_with_force(self, cli_runner, isolated_config: Path) -> None:
        cli_runner.invoke(app, ["config", "set", "cache.ttl_seconds", "60"])
        result = cli_runner.invoke(app, ["--force", "config", "reset"])
        assert result.exit_code == 0, result.output
        assert load_global_config().cache.ttl_seconds != 60
