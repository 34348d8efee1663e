"""Scanned-code CLI commands: scan, list, delete, sync, remote, resync, run."""

import asyncio
import json
import sys
from typing import Any

import typer

from scansync.config import Settings, get_settings
from scansync.engine.agent import ScanAgent
from scansync.errors import InvalidCapture, NetworkError, PersistenceError
from scansync.store.models import Record
from scansync.sync.engine import PushOutcome


def build_agent(settings: Settings) -> ScanAgent:
    """Assemble an agent from settings. Must run inside the event loop."""
    return ScanAgent(settings)


def _output(data: Any, as_json: bool, human_lines: list[str]) -> None:
    """Output data as JSON or human-readable format."""
    if as_json:
        typer.echo(json.dumps(data))
    else:
        for line in human_lines:
            typer.echo(line)


def _fail(message: str, as_json: bool) -> None:
    _output({"status": "error", "message": message}, as_json, [f"Error: {message}"])
    raise typer.Exit(1)


def _run(coro_factory) -> Any:
    """Run an async command body, mapping storage failures to exit code 1."""
    try:
        return asyncio.run(coro_factory())
    except PersistenceError as e:
        typer.echo(f"Local storage error: {e}", err=True)
        raise typer.Exit(1)


def _record_line(record: Record) -> str:
    flag = " [rejected]" if record.rejected else ""
    return (
        f"{record.id}  {record.symbology:<10} {record.sync_state.value:<14} "
        f"{record.created_at:%Y-%m-%d %H:%M:%S}  {record.payload}{flag}"
    )


def scan(
    payload: str = typer.Argument(..., help="Decoded content of the code"),
    symbology: str = typer.Option(
        None,
        "--symbology",
        "-s",
        help="Code format (default: from config)",
    ),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Capture one code and try to push it to the server."""
    settings = get_settings()

    async def body() -> Record | None:
        async with build_agent(settings) as agent:
            try:
                record = agent.scan(payload, symbology)
            except InvalidCapture as e:
                _fail(str(e), output_json)
            await agent.controller.drain()
            return agent.store.get(record.id) if record else None

    record = _run(body)
    if record is None:
        _output({"status": "duplicate"}, output_json, ["Duplicate scan ignored."])
        return

    _output(
        {"status": "captured", "record": record.to_dict()},
        output_json,
        [f"Captured {record.id} ({record.symbology}), state: {record.sync_state.value}"]
        + ([f"Server said: {record.last_error}"] if record.last_error else []),
    )


def list_codes(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """List locally stored codes, newest first."""
    settings = get_settings()

    async def body() -> list[Record]:
        async with build_agent(settings) as agent:
            return agent.store.list_visible()

    records = _run(body)
    lines = [_record_line(r) for r in records] or ["No codes stored locally."]
    _output([r.to_dict() for r in records], output_json, lines)


def delete(
    record_id: str = typer.Argument(..., help="Local record id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Delete a code locally and on the server."""
    settings = get_settings()

    async def body() -> tuple[str, Record | None]:
        async with build_agent(settings) as agent:
            step = agent.delete(record_id)
            await agent.controller.drain()
            return step.outcome.value, agent.store.get(record_id)

    outcome, remaining = _run(body)
    if outcome == PushOutcome.NOOP.value:
        _fail(f"No such record: {record_id}", output_json)

    if remaining is None:
        _output({"status": "deleted", "id": record_id}, output_json, [f"Deleted {record_id}."])
    else:
        _output(
            {"status": "delete_pending", "id": record_id, "error": remaining.last_error},
            output_json,
            [
                f"Removed {record_id} locally; server delete will be retried on next sync.",
                f"Reason: {remaining.last_error}",
            ],
        )


def sync(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Run a full sync pass against the server."""
    settings = get_settings()

    async def body():
        async with build_agent(settings) as agent:
            return await agent.sync_now()

    report = _run(body)
    lines = [
        f"Pushed: {report.pushed}  Reconciled: {report.reconciled}  Deleted: {report.deleted}",
        f"Failures: {report.failures} (rejected: {report.rejected})",
    ]
    if not report.remote_ok:
        lines.append(f"Server list unavailable: {report.remote_error}")
    for result in report.errors:
        lines.append(f"  {result.record_id}: {result.outcome.value} - {result.error}")
    _output(report.to_dict(), output_json, lines)

    if report.failures or not report.remote_ok:
        raise typer.Exit(1)


def remote(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """List codes stored on the server."""
    settings = get_settings()

    async def body():
        async with build_agent(settings) as agent:
            try:
                return await agent.engine.refresh_remote_view()
            except NetworkError as e:
                _fail(f"Server unavailable: {e}", output_json)

    records = _run(body)
    lines = [f"{r.id}  {r.type:<10} {r.data}" for r in records] or ["No codes on the server."]
    _output([r.to_dict() for r in records], output_json, lines)


def resync(
    record_id: str = typer.Argument(..., help="Local record id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Retry a record the server rejected on the next sync."""
    settings = get_settings()

    async def body() -> bool:
        async with build_agent(settings) as agent:
            return agent.engine.resync(record_id)

    if not _run(body):
        _fail(f"Record {record_id} is not marked as rejected", output_json)
    _output({"status": "queued", "id": record_id}, output_json, [f"{record_id} queued for sync."])


def _parse_scan_line(line: str) -> tuple[str, str | None]:
    """Split a scanner feed line into payload and optional symbology."""
    payload, sep, symbology = line.rstrip("\r\n").partition("\t")
    return payload, (symbology if sep else None)


def run(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output in JSON format"),
) -> None:
    """Read scans from stdin and sync in the background until EOF.

    Each input line is PAYLOAD or PAYLOAD<TAB>SYMBOLOGY, one per scan event.
    """
    settings = get_settings()

    async def body() -> int:
        loop = asyncio.get_running_loop()
        agent = build_agent(settings)
        await agent.start()
        accepted = 0
        try:
            while True:
                line = await loop.run_in_executor(None, sys.stdin.readline)
                if not line:
                    break
                payload, symbology = _parse_scan_line(line)
                try:
                    record = agent.scan(payload, symbology)
                except InvalidCapture as e:
                    _output({"status": "invalid", "message": str(e)}, output_json, [f"Ignored: {e}"])
                    continue
                if record is None:
                    continue
                accepted += 1
                _output(
                    {"status": "captured", "record": record.to_dict()},
                    output_json,
                    [f"Captured {record.id} ({record.symbology})"],
                )
            await agent.sync_now()
        finally:
            await agent.stop()
        return accepted

    accepted = _run(body)
    if not output_json:
        typer.echo(f"{accepted} code(s) captured.")
