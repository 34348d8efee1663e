"""scansync CLI - capture scanned codes and sync them with the server."""

import typer

from scansync import __version__
from scansync.cli_commands import codes
from scansync.cli_commands.config import config_app
from scansync.cli_commands.status import status_command
from scansync.config import get_settings
from scansync.logging import setup_logging

app = typer.Typer(
    name="scansync",
    help="scansync - capture barcodes and QR codes locally and sync them with a server.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"scansync {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """scansync - capture scanned codes and sync them with a server."""
    settings = get_settings()
    setup_logging(settings.log_level, log_file=settings.log_file, device_id=settings.device_id)


# Record commands live directly on the main app
app.command(name="scan")(codes.scan)
app.command(name="list")(codes.list_codes)
app.command(name="delete")(codes.delete)
app.command(name="sync")(codes.sync)
app.command(name="remote")(codes.remote)
app.command(name="resync")(codes.resync)
app.command(name="run")(codes.run)
app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
