from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

from pricefeed.domain.models import Catalog, FetchSummary


def print_summary(summary: FetchSummary, console: Optional[Console] = None) -> None:
    """
    Render one fetch run summary as a rich table.
    """
    console = console or Console()
    ok = summary.get("success", False)
    status = "[bold green]success[/bold green]" if ok else "[bold red]failed[/bold red]"

    table = Table(title=f"Fetch Run {summary.get('fetch_id', '?')}", box=box.ROUNDED)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")

    table.add_row("Status", status)
    table.add_row("Trigger", str(summary.get("trigger_type", "")))
    table.add_row("Started", str(summary.get("started_at", "")))
    table.add_row("Duration (ms)", f"{summary.get('duration_ms', 0):,}")
    table.add_row("Records stored", f"{summary.get('records_stored', 0):,}")
    table.add_row(
        "Sources failed",
        f"{summary.get('sources_failed', 0)}/{summary.get('sources_total', 0)}",
    )
    failed = summary.get("failed_sources") or []
    if failed:
        table.add_row("Failed sources", ", ".join(failed))
    if summary.get("error"):
        table.add_row("Error", f"[red]{summary['error']}[/red]")

    console.print(table)


def _format_decimal(value: Any) -> str:
    if value is None:
        return "-"
    try:
        return f"{value:,}"
    except (TypeError, ValueError):
        return str(value)


def print_view(view: Optional[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """
    Render a price view (today / one day / one run) grouped by category.
    """
    console = console or Console()
    if not view:
        console.print("[yellow]No data to display.[/yellow]")
        return

    meta = view.get("meta", {})
    title = f"Prices at {meta.get('timestamp', '?')}\n[dim]Sources: {meta.get('source_name', '-')}[/dim]"
    table = Table(title=title, box=box.ROUNDED, caption=f"fetch_id {meta.get('fetch_id', '-')}")
    table.add_column("Category", style="cyan", no_wrap=True)
    table.add_column("Symbol", style="bold")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Change %", justify="right", style="yellow")
    table.add_column("Unit", style="dim")

    for category, items in view.get("data", {}).items():
        for entry in items:
            table.add_row(
                category,
                str(entry.get("symbol", "")),
                _format_decimal(entry.get("price")),
                _format_decimal(entry.get("change_percent")),
                str(entry.get("unit") or ""),
            )

    console.print(table)


def print_views(views: Iterable[Dict[str, Any]], total: int, console: Optional[Console] = None) -> None:
    """Render a page of views followed by a pagination footer."""
    console = console or Console()
    page: List[Dict[str, Any]] = list(views)
    if not page:
        console.print("[yellow]No data found.[/yellow]")
        return
    for view in page:
        print_view(view, console)
    console.print(f"[dim]{len(page)} shown of {total} total[/dim]")


def print_catalog(catalog: Catalog, console: Optional[Console] = None) -> None:
    """Render the active data sources of a catalog."""
    console = console or Console()
    table = Table(
        title=f"Active Data Sources\n[dim]loaded {catalog.loaded_at.isoformat()}[/dim]",
        box=box.ROUNDED,
        caption="Sorted by priority",
    )
    table.add_column("Id", justify="right", style="blue")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("Parser", style="green")
    table.add_column("Priority", justify="right")
    table.add_column("URL", style="dim")

    for source in catalog.active_sources:
        table.add_row(
            str(source.id),
            source.name,
            catalog.category_name(source.category_id) or "-",
            source.parser,
            str(source.priority),
            source.url,
        )

    console.print(table)
    console.print(f"[dim]{len(catalog.symbols)} active symbols, {len(catalog.categories)} categories[/dim]")


__all__ = ["print_catalog", "print_summary", "print_view", "print_views"]
