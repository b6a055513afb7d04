"""RoofCalc CLI.

Commands:
- init: Initialize database schema
- import-csv: Import a Tradify quote export into pricing patterns
- import-pdf: Import one historical PDF quote (AI extraction)
- generate: Generate quote line items from a template and an extraction
- patterns: List learned pricing patterns
- clear-patterns: Remove pricing patterns
- web serve: Run the HTTP API
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from roofcalc.config import get_config
from roofcalc.core.logging import configure_logging
from roofcalc.db.connection import close_db, get_session, init_db
from roofcalc.errors import RoofCalcError
from roofcalc.ingestion import import_pricing_csv, import_pricing_pdf
from roofcalc.pricing.store import PricingPatternStore
from roofcalc.quoting.generator import QuoteGenerator

app = typer.Typer(
    name="roofcalc",
    help="RoofCalc - measurement-driven quote pricing for roofing contractors",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="HTTP API")
app.add_typer(web_cli, name="web")

console = Console()


def _run(coro):
    """Run a coroutine, dispose the engine, and turn RoofCalcError into exit code 1."""

    async def _wrapped():
        try:
            return await coro
        finally:
            await close_db()

    try:
        return asyncio.run(_wrapped())
    except RoofCalcError as e:
        console.print(f"[red]✗[/red] {e.message}")
        if e.session_id:
            console.print(f"  Import session: {e.session_id}", style="dim")
        raise typer.Exit(code=1) from e


@app.callback()
def main(log_level: str | None = typer.Option(None, "--log-level", help="Log level")):
    configure_logging(level=log_level)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")
    if drop:
        console.print("[yellow]Dropping existing tables...[/yellow]")

    _run(init_db(drop=drop))
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command(name="import-csv")
def import_csv_cmd(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Tradify CSV export"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
):
    """Import a Tradify quote export (replaces previous Tradify patterns)."""
    org_id = org_id or get_config().org_id
    console.print(f"[bold]Importing CSV:[/bold] {file} (org={org_id})")

    async def _import():
        async with get_session() as session:
            return await import_pricing_csv(
                session, org_id, file.read_text(encoding="utf-8-sig"), file.name
            )

    result = _run(_import())
    console.print(
        f"[bold green]✓[/bold green] {result.total_line_items} line items from "
        f"{result.accepted_quotes}/{result.total_quotes} accepted quotes, "
        f"{result.unique_patterns} patterns"
    )


@app.command(name="import-pdf")
def import_pdf_cmd(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Quote PDF"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
):
    """Import one historical PDF quote using AI line-item extraction."""
    org_id = org_id or get_config().org_id
    console.print(f"[bold]Importing PDF:[/bold] {file} (org={org_id})")

    async def _import():
        async with get_session() as session:
            return await import_pricing_pdf(session, org_id, file.read_bytes(), file.name)

    result = _run(_import())
    data = result.extracted_data
    console.print(
        f"[bold green]✓[/bold green] Quote {data.quote_number or '-'} "
        f"({data.customer_name or 'unknown customer'}): "
        f"{data.line_item_count} line items, {result.patterns_created} patterns"
    )


@app.command()
def generate(
    extraction_id: UUID = typer.Option(..., "--extraction", help="Measurement extraction ID"),
    template_id: UUID = typer.Option(..., "--template", help="Quote template ID"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    no_history: bool = typer.Option(False, "--no-history", help="Ignore historical pricing"),
):
    """Generate quote line items and print them."""
    org_id = org_id or get_config().org_id

    async def _generate():
        async with get_session() as session:
            return await QuoteGenerator(session).generate(
                org_id, extraction_id, template_id, use_historical_context=not no_history
            )

    result = _run(_generate())

    table = Table(title=f"{result.template.name} - {result.extraction.address or extraction_id}")
    table.add_column("Description", style="cyan")
    table.add_column("Code")
    table.add_column("Qty", justify="right")
    table.add_column("Unit", justify="right")
    table.add_column("Total", justify="right", style="green")
    table.add_column("Hist", justify="center")

    for item in result.items:
        table.add_row(
            item.description,
            item.item_code or "",
            f"{item.qty:g}",
            f"{item.unit_cost:.2f}",
            f"{item.total:.2f}",
            "✓" if item.historical_pricing else "",
        )

    console.print(table)
    console.print(f"[bold]Subtotal:[/bold] {result.summary.subtotal:.2f}")
    if result.historical_context and result.historical_context.pricing_adjusted:
        console.print("[yellow]Prices adjusted from historical data[/yellow]")


@app.command()
def patterns(
    source: str | None = typer.Option(None, "--source", help="Filter by source"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    limit: int = typer.Option(50, "--limit", help="Rows to show"),
):
    """List pricing patterns, most frequent first."""
    org_id = org_id or get_config().org_id

    async def _list():
        async with get_session() as session:
            return await PricingPatternStore(session).list_patterns(org_id, source)

    rows = _run(_list())
    if not rows:
        console.print("[yellow]No pricing patterns[/yellow]")
        return

    table = Table(title=f"Pricing patterns ({len(rows)})")
    table.add_column("Key", style="cyan")
    table.add_column("Source")
    table.add_column("Avg price", justify="right", style="green")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Count", justify="right")

    for p in rows[:limit]:
        table.add_row(
            p.normalized_key,
            p.source,
            f"{p.avg_unit_price:.2f}",
            f"{p.min_unit_price:.2f}" if p.min_unit_price is not None else "",
            f"{p.max_unit_price:.2f}" if p.max_unit_price is not None else "",
            str(p.occurrence_count),
        )
    console.print(table)


@app.command(name="clear-patterns")
def clear_patterns_cmd(
    source: str | None = typer.Option(None, "--source", help="Only this source"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete pricing patterns (all sources unless --source is given)."""
    org_id = org_id or get_config().org_id
    scope = f"'{source}' patterns" if source else "ALL pricing patterns"
    if not yes:
        typer.confirm(f"Delete {scope} for org={org_id}?", abort=True)

    async def _clear():
        async with get_session() as session:
            return await PricingPatternStore(session).clear(org_id, source)

    deleted = _run(_clear())
    console.print(f"[bold green]✓[/bold green] Deleted {deleted} patterns")


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the RoofCalc HTTP API."""
    import uvicorn

    typer.echo(f"Starting RoofCalc API on http://{host}:{port}")
    uvicorn.run("roofcalc.web.app:app", host=host, port=port, reload=reload, workers=1)


if __name__ == "__main__":
    app()
