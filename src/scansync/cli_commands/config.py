"""Configuration management CLI commands."""

import json

import typer
import yaml

from scansync.config import get_settings

config_app = typer.Typer(
    name="config",
    help="Configuration management - view and modify settings.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current configuration."""
    settings = get_settings()

    config_data = {
        "server_url": settings.server_url,
        "request_timeout": settings.request_timeout,
        "dedup_window": settings.dedup_window,
        "default_symbology": settings.default_symbology,
        "sync_interval": settings.sync_interval,
        "data_dir": str(settings.data_path),
        "symbologies_file": str(settings.symbologies_path),
        "log_level": settings.log_level,
        "log_file": str(settings.log_file) if settings.log_file else None,
        "device_id": settings.device_id,
    }

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
    else:
        typer.echo("")
        typer.echo("scansync Configuration")
        typer.echo("----------------------")
        typer.echo(f"Server URL: {settings.server_url}")
        typer.echo(f"Request timeout: {settings.request_timeout}s")
        typer.echo(f"Duplicate window: {settings.dedup_window}s")
        typer.echo(f"Default symbology: {settings.default_symbology}")
        typer.echo(f"Sync interval: {settings.sync_interval}s")
        typer.echo(f"Data directory: {settings.data_path}")
        typer.echo(f"Symbologies file: {settings.symbologies_path}")
        typer.echo(f"Log level: {settings.log_level}")
        typer.echo("")
        typer.echo("Set values using environment variables with SCANSYNC_ prefix")
        typer.echo("Example: SCANSYNC_SERVER_URL=http://192.168.1.20:3000")


@config_app.command(name="set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key to set"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Set a configuration value.

    Note: Configuration is environment-based. This command shows what to
    set in your environment or .env file.
    """
    valid_keys = {
        "server_url",
        "request_timeout",
        "dedup_window",
        "default_symbology",
        "sync_interval",
        "data_dir",
        "log_level",
        "log_file",
        "device_id",
    }

    if key not in valid_keys:
        typer.echo(f"Unknown key: {key}")
        typer.echo(f"Valid keys: {', '.join(sorted(valid_keys))}")
        raise typer.Exit(1)

    env_key = f"SCANSYNC_{key.upper()}"
    typer.echo(f"To set {key}={value}, add to your environment:")
    typer.echo(f"  export {env_key}={value}")
    typer.echo("")
    typer.echo("Or add to .env:")
    typer.echo(f"  {env_key}={value}")


# Symbology alias subcommand group
symbologies_app = typer.Typer(
    name="symbologies",
    help="Manage scanner symbology aliases.",
    no_args_is_help=True,
)
config_app.add_typer(symbologies_app, name="symbologies")


def _load_user_aliases() -> dict:
    """Load the user alias file (without bundled defaults)."""
    path = get_settings().symbologies_path
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        typer.echo(f"Error reading symbologies: {e}")
        raise typer.Exit(1)
    aliases = data.get("aliases", {}) if isinstance(data, dict) else {}
    return aliases if isinstance(aliases, dict) else {}


def _save_user_aliases(aliases: dict) -> None:
    path = get_settings().symbologies_path
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump({"aliases": aliases}, f, default_flow_style=False)
    typer.echo(f"Saved to {path}")


@symbologies_app.command(name="list")
def list_symbologies(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List scanner name -> symbology tag aliases."""
    settings = get_settings()
    aliases = settings.load_symbology_aliases()

    if output_json:
        typer.echo(json.dumps(aliases, indent=2))
        return

    typer.echo("")
    typer.echo("Symbology Aliases")
    typer.echo("-----------------")
    for name in sorted(aliases):
        typer.echo(f"  {name} -> {aliases[name]}")
    typer.echo("")
    typer.echo(f"File: {settings.symbologies_path}")


@symbologies_app.command()
def add(
    name: str = typer.Argument(..., help="Name reported by the scanner"),
    tag: str = typer.Argument(..., help="Canonical symbology tag"),
) -> None:
    """Add or replace a symbology alias."""
    aliases = _load_user_aliases()
    aliases[name.lower()] = tag.lower()
    typer.echo(f"Added alias: {name.lower()} -> {tag.lower()}")
    _save_user_aliases(aliases)


@symbologies_app.command()
def remove(
    name: str = typer.Argument(..., help="Alias to remove"),
) -> None:
    """Remove a user-defined symbology alias."""
    aliases = _load_user_aliases()
    matches = [k for k in aliases if str(k).lower() == name.lower()]
    if not matches:
        typer.echo(f"Alias not found: {name}")
        raise typer.Exit(1)

    for key in matches:
        del aliases[key]
    typer.echo(f"Removed alias: {name}")
    _save_user_aliases(aliases)
