"""Record subcommand: start."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from candlebook.config.settings import split_csv
from candlebook.ingestion.manager import STREAMS, NoConnectorsError, RecorderManager

app = typer.Typer(help="Record raw exchange streams to partitioned NDJSON")


@app.command("start")
def start(
    ctx: typer.Context,
    symbols: str | None = typer.Option(None, "--symbols", "-s", help="Comma-separated symbols, e.g. BTC,ETH"),
    streams: str | None = typer.Option(
        None, "--streams", help=f"Comma-separated streams: {','.join(STREAMS)}"
    ),
    out_dir: str | None = typer.Option(None, "--out-dir", "-o", help="Data directory (overrides config)"),
) -> None:
    """Connect to the configured exchanges and record until Ctrl+C."""
    settings = ctx.obj["settings"]
    manager = RecorderManager.from_settings(
        settings,
        symbols=[s.upper() for s in split_csv(symbols)] or None,
        streams=split_csv(streams) or None,
        out_dir=out_dir,
    )
    try:
        manager.build_connectors()
    except NoConnectorsError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(2)

    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo(f"Recording {len(manager.connectors)} stream(s) to {manager.data_dir} (Ctrl+C to stop)...")
        loop.run_until_complete(manager.run(stop_event=stop_event))
    except KeyboardInterrupt:
        loop.run_until_complete(manager.close())
    finally:
        loop.close()
    status = manager.get_status()
    typer.echo(f"Stopped. {status['record_count']} records in {status['elapsed_sec']}s.")
