"""Log subcommand: export, stats."""

from __future__ import annotations

from pathlib import Path

import typer

from candlebook.storage.export import export_records_to_parquet, get_connection, log_stats
from candlebook.storage.reader import list_ndjson_files

app = typer.Typer(help="Raw log export and statistics")


def _raw_files(settings, data_dir: str | None) -> list[Path]:
    root = Path(data_dir or settings.out_dir) / "raw"
    return list_ndjson_files(root, include_tmp=settings.include_tmp)


@app.command("export")
def export(
    ctx: typer.Context,
    exchange: str | None = typer.Option(None, "--exchange", "-e", help="Filter by exchange"),
    output: str = typer.Option("records.parquet", "--output", "-o", help="Output path"),
    data_dir: str | None = typer.Option(None, "--data-dir", help="Data directory (overrides config)"),
) -> None:
    """Export raw records to Parquet."""
    settings = ctx.obj["settings"]
    files = _raw_files(settings, data_dir)
    conn = get_connection()
    try:
        count = export_records_to_parquet(conn, files, output, exchange=exchange)
        typer.echo(f"Exported {count} records from {len(files)} files to {output}")
    finally:
        conn.close()


@app.command("stats")
def stats(
    ctx: typer.Context,
    data_dir: str | None = typer.Option(None, "--data-dir", help="Data directory (overrides config)"),
) -> None:
    """Show raw log statistics (counts, time range, by stream)."""
    settings = ctx.obj["settings"]
    files = _raw_files(settings, data_dir)
    conn = get_connection()
    try:
        s = log_stats(conn, files)
        typer.echo(f"Files: {len(files)}")
        typer.echo(f"Total records: {s['total_records']}")
        typer.echo(f"Min ts_capture_ms: {s.get('min_ts_capture_ms')}")
        typer.echo(f"Max ts_capture_ms: {s.get('max_ts_capture_ms')}")
        if s.get("by_stream"):
            typer.echo("By stream:")
            for row in s["by_stream"]:
                typer.echo(f"  {row['exchange']}/{row['stream']}/{row['symbol']}  {row['count']}")
    finally:
        conn.close()
