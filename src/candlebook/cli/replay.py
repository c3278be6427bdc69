"""Replay subcommand: book, mid."""

import json

import typer

from candlebook.config.settings import split_csv
from candlebook.replay.engine import book_timeline, replay_merged, replay_to_mid_series, write_merged_ndjson

app = typer.Typer(help="Deterministic replay of recorded raw logs")


@app.command("book")
def replay_book(
    ctx: typer.Context,
    symbol: str = typer.Option(..., "--symbol", "-s", help="Canonical symbol, e.g. BTC"),
    exchanges: str = typer.Option("kraken,coinbase,bitstamp", "--exchanges", "-e", help="Merge order = tie order"),
    from_ms: int | None = typer.Option(None, "--from-ms", help="Start time (ms epoch)"),
    to_ms: int | None = typer.Option(None, "--to-ms", help="End time (ms epoch)"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write merged records to this NDJSON file"),
) -> None:
    """Merge sampled books across exchanges by time."""
    settings = ctx.obj["settings"]
    merged = replay_merged(
        settings.out_dir,
        symbol.upper(),
        split_csv(exchanges),
        "book",
        from_ms=from_ms,
        to_ms=to_ms,
        include_tmp=settings.include_tmp,
    )
    if output:
        n = write_merged_ndjson(merged, output)
        typer.echo(f"Wrote {n} merged records to {output}")
        return
    n = 0
    for row in book_timeline(merged):
        n += 1
        if n <= 20:
            typer.echo(json.dumps(row))
    if n > 20:
        typer.echo(f"  ... and {n - 20} more")
    typer.echo(f"Replayed {n} book records")


@app.command("mid")
def replay_mid(
    ctx: typer.Context,
    symbol: str = typer.Option(..., "--symbol", "-s", help="Canonical symbol, e.g. BTC"),
    exchange: str = typer.Option("kraken", "--exchange", "-e", help="Exchange"),
    from_ms: int | None = typer.Option(None, "--from-ms", help="Start time (ms epoch)"),
    to_ms: int | None = typer.Option(None, "--to-ms", help="End time (ms epoch)"),
) -> None:
    """Print the mid price series rebuilt from sampled books."""
    settings = ctx.obj["settings"]
    series = replay_to_mid_series(
        settings.out_dir,
        symbol.upper(),
        exchange,
        from_ms=from_ms,
        to_ms=to_ms,
        include_tmp=settings.include_tmp,
    )
    typer.echo(f"Replayed {len(series)} snapshots -> {len(series)} mid points")
    for ts, mid in series[:20]:
        typer.echo(f"  {ts}  {mid}")
    if len(series) > 20:
        typer.echo(f"  ... and {len(series) - 20} more")
