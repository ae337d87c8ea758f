"""Command-line entry point.

Run modes are mutually exclusive; each command loads settings, builds a
``Pipeline`` for its mode and runs it until SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any, Literal

import typer
from pydantic import ValidationError

from launchpad_indexer.codec.idl import IdlError, load_idl
from launchpad_indexer.config import Settings, get_settings
from launchpad_indexer.pipeline import IndexerMode, Pipeline, debug_signature
from launchpad_indexer.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

app = typer.Typer(help="Index a Solana launchpad program into a relational database.", no_args_is_help=True)

Command = Literal["backfill", "realtime", "gap-detect", "debug", "init-db"]


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s | %(name)-32s | %(levelname)-5s | %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _load_settings(command: Command) -> Settings:
    """Load settings and the program schema, exiting with code 1 on failure."""
    try:
        settings = get_settings()
        settings.validate_requirements(command=command)
        load_idl()
    except (ValidationError, ValueError, IdlError) as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(code=1) from e
    _configure_logging(settings)
    logger.info("Settings: %s", json.dumps(settings.redacted_summary()))
    return settings


async def _run_pipeline(pipeline: Pipeline) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, pipeline.request_stop)
    try:
        await pipeline.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.remove_signal_handler(sig)


def _run(settings: Settings, mode: IndexerMode, **kwargs: Any) -> None:
    pipeline = Pipeline(settings, mode=mode, **kwargs)
    try:
        asyncio.run(_run_pipeline(pipeline))
    except Exception as e:
        logger.error("Indexer failed: %s", e)
        raise typer.Exit(code=1) from e


@app.command()
def backfill(
    start: str | None = typer.Option(
        None, "--start", help="Lower bound of a range to schedule (exclusive; not itself replayed)."
    ),
    end: str | None = typer.Option(None, "--end", help="Newest signature of a range to schedule (exclusive)."),
) -> None:
    """Claim and replay pending sync ranges."""
    if (start is None) != (end is None):
        typer.echo("--start and --end must be given together", err=True)
        raise typer.Exit(code=1)
    settings = _load_settings("backfill")
    _run(settings, IndexerMode.BACKFILL, backfill_range=(start, end) if start and end else None)


@app.command()
def realtime() -> None:
    """Tail new program transactions through the log subscription."""
    settings = _load_settings("realtime")
    _run(settings, IndexerMode.REALTIME)


@app.command("gap-detect")
def gap_detect(
    once: bool = typer.Option(False, "--once", help="Run a single pass and exit."),
) -> None:
    """File backfill ranges for discontinuities and failed ranges."""
    settings = _load_settings("gap-detect")
    _run(settings, IndexerMode.GAP_DETECT, run_once=once)


@app.command()
def debug(signature: str = typer.Argument(..., help="Transaction signature to decode.")) -> None:
    """Print the events extracted from one transaction (no persistence)."""
    settings = _load_settings("debug")
    try:
        events = asyncio.run(debug_signature(settings, signature))
    except Exception as e:
        typer.echo(f"Failed to decode {signature}: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo(json.dumps([event.to_dict() for event in events], indent=2, default=str))


@app.command("init-db")
def init_db() -> None:
    """Create the database schema directly (development)."""
    settings = _load_settings("init-db")

    async def _init() -> None:
        db = DatabaseManager(settings.database.url)
        try:
            await db.init_schema_async()
        finally:
            await db.dispose_async()

    try:
        asyncio.run(_init())
    except Exception as e:
        typer.echo(f"Schema initialization failed: {e}", err=True)
        raise typer.Exit(code=1) from e
    typer.echo("Schema initialized")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
