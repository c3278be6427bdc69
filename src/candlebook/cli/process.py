"""Process subcommand: run."""

from __future__ import annotations

import asyncio

import typer

from candlebook.config.settings import split_csv
from candlebook.processor.pipeline import process_symbol

app = typer.Typer(help="Derive multi-timeframe candles from recorded Kraken OHLC")


@app.command("run")
def run_process(
    ctx: typer.Context,
    symbols: str | None = typer.Option(None, "--symbols", "-s", help="Comma-separated symbols"),
    in_dir: str | None = typer.Option(None, "--in-dir", help="Recorder data directory (contains raw/)"),
    out_dir: str | None = typer.Option(None, "--out-dir", "-o", help="Derived output directory"),
    timeframes: str | None = typer.Option(None, "--timeframes", "-t", help="Comma-separated, default all"),
    include_tmp: bool | None = typer.Option(
        None, "--include-tmp/--no-include-tmp", help="Also read unfinalized .ndjson.tmp partitions"
    ),
) -> None:
    """Run the candle pipeline once per symbol. Safe to re-run: output never goes below the saved watermark."""
    settings = ctx.obj["settings"]
    syms = [s.upper() for s in split_csv(symbols)] or settings.processor_symbols
    if not syms:
        typer.echo("No symbols (use --symbols BTC,ETH)", err=True)
        raise typer.Exit(2)
    data_dir = in_dir or settings.out_dir
    derived_dir = out_dir or settings.derived_dir
    tfs = split_csv(timeframes) or settings.timeframes
    tmp = settings.include_tmp if include_tmp is None else include_tmp

    async def _run() -> None:
        for symbol in syms:
            stats = await process_symbol(
                symbol,
                data_dir,
                derived_dir,
                timeframes=tfs,
                base_timeframe=settings.base_timeframe,
                volume_mode=settings.volume_mode,
                include_tmp=tmp,
                checkpoint_every=settings.processor_checkpoint_every,
                max_partition_bytes=settings.max_partition_bytes,
            )
            typer.echo(
                f"{symbol}: {stats.files} files, {stats.records} records, "
                f"{stats.base_candles} base candles, {sum(stats.written.values())} written"
            )

    try:
        asyncio.run(_run())
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(2)
