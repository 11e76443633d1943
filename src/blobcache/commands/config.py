"""Config commands -- view and modify the global configuration.

Provides the ``blobcache config`` sub-command group.  Settings live in
``config.json`` under the blobcache config directory and supply the
defaults for the fetch client, the blob cache, the response cache and the
output format.  Project files and ``BLOBCACHE_*`` variables still take
precedence at run time (see :func:`~blobcache.config.resolve_config`).
"""

from __future__ import annotations

import typer
from pydantic import ValidationError

from blobcache.exit_codes import EXIT_INVALID_USAGE
from blobcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_UNSET_VALUES = ("null", "none", "")


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False, "--effective", help="Show the merged configuration actually in use."
    ),
) -> None:
    """Show the current configuration.

    Example::

        blobcache config show
        blobcache --json config show --effective
    """
    from blobcache.config import get_config_dir, load_global_config, resolve_config

    config = resolve_config() if effective else load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'cache.ttl_seconds')."
    ),
    value: str = typer.Argument(help="Value to set; 'null' clears optional keys."),
) -> None:
    """Set a configuration value.

    The key must name an existing leaf setting.  The string value is
    validated (and converted) by :class:`~blobcache.models.GlobalConfig`
    before anything is written.

    Example::

        blobcache config set fetch.base_address https://cdn.example.com
        blobcache config set cache.max_size_bytes 52428800
        blobcache config set cache.stale_if_error true
    """
    from blobcache.config import load_global_config, save_global_config
    from blobcache.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")

    section, dot, field = key.partition(".")
    target = data.get(section)
    if not dot or not isinstance(target, dict) or field not in target:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    target[field] = None if value.lower() in _UNSET_VALUES else value

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Invalid value for {key}: {exc.errors()[0]['msg']}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    new_value = getattr(getattr(new_config, section), field)
    success(f"Set {key} = {new_value}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the configuration to defaults.

    Asks for confirmation unless ``--force`` is given on the root command.
    """
    from blobcache.config import save_global_config
    from blobcache.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        if not typer.confirm("Reset all config to defaults?"):
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
