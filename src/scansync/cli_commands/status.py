"""Status command for scansync CLI."""

import json

import typer

from scansync.cli_commands import codes
from scansync.config import get_settings


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show local record counts and server reachability."""
    settings = get_settings()

    async def body() -> tuple[dict, bool]:
        async with codes.build_agent(settings) as agent:
            reachable = await agent.remote.check_server()
            return agent.get_status(), reachable

    status_data, reachable = codes._run(body)
    status_data["server_reachable"] = reachable
    records = status_data["records"]

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("scansync Status")
    typer.echo("---------------")
    typer.echo(f"Server: {settings.server_url} ({'reachable' if reachable else 'unreachable'})")
    typer.echo(f"Records: {records['total']}")
    typer.echo(f"  Pending: {records['pending']}")
    typer.echo(f"  Synced: {records['synced']}")
    typer.echo(f"  Awaiting server delete: {records['delete_pending']}")
    if records.get("rejected", 0) > 0:
        typer.echo(f"Rejected by server: {records['rejected']} (see 'scansync list')")
    typer.echo(f"Data directory: {settings.data_path}")
    typer.echo("")

    if records["pending"] and reachable:
        typer.echo("Push pending records with: scansync sync")
