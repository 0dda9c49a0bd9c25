"""
Command-line entry point for the price feed pipeline.

Usage:
    pricefeed info                      # effective settings
    pricefeed sources                   # active data sources from the catalog
    pricefeed fetch --trigger hourly    # one fetch run, prints the summary
    pricefeed today --ttl 300 --json    # today's view, refreshed when older than 5 min
    pricefeed history --page 2 --limit 7
    pricefeed range --start 2024-01-01 --end 2024-01-31

Ctrl-C exits with status 130.
"""

from __future__ import annotations

import asyncio
import json
import sys
from datetime import datetime
from typing import Any, Optional

import typer

from pricefeed.config import get_settings
from pricefeed.domain.models import TriggerType
from pricefeed.exceptions import PriceFeedError
from pricefeed.pipeline import open_pipeline
from pricefeed.reporter import print_catalog, print_summary, print_view, print_views
from pricefeed.utils.logging import configure_logging

app = typer.Typer(help="Price feed ingestion CLI.")


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


def _dump(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def _page(page: int, limit: int) -> tuple[int, int]:
    page = page if page >= 1 else 1
    limit = limit if limit >= 1 else 10
    return limit, (page - 1) * limit


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"timeout={settings.fetch_timeout_ms}ms attempts={settings.fetch_max_attempts} "
        f"backoff={settings.fetch_retry_base_delay_ms}ms "
        f"threshold={settings.fetch_failure_threshold} ttl={settings.cache_ttl_seconds}s"
    )


@app.command()
def sources() -> None:
    """
    List the active data sources of the catalog.
    """
    _setup()

    async def _run() -> None:
        async with open_pipeline() as pipeline:
            print_catalog(await pipeline.orchestrator.initialize())

    asyncio.run(_run())


@app.command()
def fetch(
    trigger: TriggerType = typer.Option(
        TriggerType.MANUAL,
        "--trigger",
        "-t",
        help="Trigger type recorded on the run (scheduled, hourly, manual, ...).",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
) -> None:
    """
    Run one fetch cycle over all active sources. Exits 1 if the run failed.

    This is the entry point a cron job calls for the hourly run.
    """
    _setup()

    async def _run() -> dict:
        async with open_pipeline() as pipeline:
            await pipeline.orchestrator.initialize()
            return dict(await pipeline.orchestrator.run_fetch(trigger))

    try:
        summary = asyncio.run(_run())
    except PriceFeedError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    if as_json:
        _dump(summary)
    else:
        print_summary(summary)
    if not summary.get("success"):
        raise typer.Exit(code=1)


@app.command()
def today(
    ttl: Optional[int] = typer.Option(
        None, "--ttl", help="Max data age in seconds before a refresh (default from settings)."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the view as JSON."),
) -> None:
    """
    Show today's prices, refreshing them first if missing or older than the TTL.
    """
    _setup()
    effective_ttl = ttl if ttl is not None else get_settings().cache_ttl_seconds

    async def _run() -> Optional[dict]:
        async with open_pipeline() as pipeline:
            return await pipeline.cache.get_fresh_data(effective_ttl)

    try:
        view = asyncio.run(_run())
    except PriceFeedError as exc:
        typer.echo(f"Error: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    if as_json:
        _dump(view)
    else:
        print_view(view)


@app.command()
def history(
    page: int = typer.Option(1, "--page", "-p", help="Page number (1-based)."),
    limit: int = typer.Option(10, "--limit", "-l", help="Days per page."),
    as_json: bool = typer.Option(False, "--json", help="Print the page as JSON."),
) -> None:
    """
    Show one view per stored day, newest first.
    """
    _setup()
    page_limit, offset = _page(page, limit)

    async def _run():
        async with open_pipeline() as pipeline:
            return await pipeline.history.get_all_data(page_limit, offset)

    views, total = asyncio.run(_run())
    if as_json:
        _dump({"data": views, "totalRecords": total, "currentPage": page})
    else:
        print_views(views, total)


@app.command(name="range")
def range_(
    start: datetime = typer.Option(..., "--start", help="Range start (ISO date or datetime)."),
    end: datetime = typer.Option(..., "--end", help="Range end (ISO date or datetime)."),
    page: int = typer.Option(1, "--page", "-p", help="Page number (1-based)."),
    limit: int = typer.Option(10, "--limit", "-l", help="Runs per page."),
    as_json: bool = typer.Option(False, "--json", help="Print the page as JSON."),
) -> None:
    """
    Show one view per fetch run between two timestamps, oldest first.
    """
    _setup()
    page_limit, offset = _page(page, limit)

    async def _run():
        async with open_pipeline() as pipeline:
            return await pipeline.history.get_data_in_range(start, end, page_limit, offset)

    views, total = asyncio.run(_run())
    if as_json:
        _dump({"data": views, "totalRecords": total, "currentPage": page})
    else:
        print_views(views, total)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
