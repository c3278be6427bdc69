"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from candlebook.config import get_settings
from candlebook.config.settings import configure_logging

app = typer.Typer(
    name="candlebook",
    help="candlebook - Record exchange books and OHLC, derive multi-timeframe candles, replay.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from candlebook.cli import log, process, record, replay  # noqa: E402

app.add_typer(record.app, name="record")
app.add_typer(process.app, name="process")
app.add_typer(replay.app, name="replay")
app.add_typer(log.app, name="log")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
