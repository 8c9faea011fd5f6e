"""Mercator CLI — command-line interface for the carrier rule and pricing engine.

Uses Typer for argument parsing and Rich for formatted terminal output.

Usage::

    python -m mercator.cli --help
    python -m mercator.cli evaluate --carrier 1 --category truck --length 500 --width 250
    python -m mercator.cli price-quotation 42 --persist
    python -m mercator.cli health
    python -m mercator.cli serve --port 8002
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich import box

from mercator.config import settings

# ---------------------------------------------------------------------------
# App & console setup
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="mercator",
    help="Mercator CLI — carrier acceptance, chargeable measure, surcharges and margins.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True, style="bold red")

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("mercator.cli")

_STATUS_COLORS = {
    "ALLOWED": "green",
    "ALLOWED_WITH_SURCHARGES": "cyan",
    "ALLOWED_UPON_REQUEST": "yellow",
    "NOT_ALLOWED": "red",
}


def _run(coro):
    """Execute a coroutine from synchronous CLI context."""
    return asyncio.run(coro)


def _parse_date(value: Optional[str]):
    if value is None:
        return None
    return datetime.strptime(value, "%Y-%m-%d").date()


# ---------------------------------------------------------------------------
# Command: evaluate
# ---------------------------------------------------------------------------


@app.command("evaluate")
def evaluate(
    carrier: int = typer.Option(..., "--carrier", help="Carrier id"),
    port: Optional[int] = typer.Option(None, "--port", help="POD port id"),
    category: Optional[str] = typer.Option(None, "--category", help="Vehicle category key"),
    commodity_type: Optional[str] = typer.Option(
        None, "--commodity-type", help="Commodity type, used for the category default"
    ),
    quick_bucket: Optional[str] = typer.Option(None, "--quick-bucket", help="Quick-quote bucket"),
    length: Optional[float] = typer.Option(None, "--length", help="Length in cm"),
    width: Optional[float] = typer.Option(None, "--width", help="Width in cm"),
    height: Optional[float] = typer.Option(None, "--height", help="Height in cm"),
    weight: Optional[float] = typer.Option(None, "--weight", help="Weight in kg"),
    units: int = typer.Option(1, "--units", help="Unit count"),
    flag: Optional[List[str]] = typer.Option(None, "--flag", help="Cargo flag (repeatable)"),
    vessel: Optional[str] = typer.Option(None, "--vessel", help="Vessel name"),
    vessel_class: Optional[str] = typer.Option(None, "--vessel-class", help="Vessel class"),
    basic_freight: Optional[float] = typer.Option(None, "--basic-freight", help="Basic freight amount"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Rule date YYYY-MM-DD"),
) -> None:
    """Evaluate one cargo against a carrier's rules.

    Examples:

      mercator evaluate --carrier 1 --category truck --length 500 --width 250

      mercator evaluate --carrier 1 --quick-bucket truck --length 500 --width 250

      mercator evaluate --carrier 1 --port 12 --length 620 --width 280 --height 310 --flag non_self_propelled
    """
    from mercator.repository import RuleRepository
    from mercator.rules.schemas import CargoInput
    from mercator.service import evaluate_cargo

    console.print(
        Panel(
            f"[bold cyan]Mercator Cargo Evaluation[/bold cyan]\n"
            f"Carrier: [yellow]{carrier}[/yellow]  "
            f"Port: [yellow]{port or '-'}[/yellow]  "
            f"Dims: [yellow]{length or '-'} x {width or '-'} x {height or '-'} cm[/yellow]",
            title="Evaluate",
            expand=False,
        )
    )

    try:
        cargo = CargoInput(
            carrier_id=carrier,
            pod_port_id=port,
            category=category,
            commodity_type=commodity_type,
            quick_bucket=quick_bucket,
            length_cm=length,
            width_cm=width,
            height_cm=height,
            weight_kg=weight,
            unit_count=units,
            flags=flag or [],
            vessel_name=vessel,
            vessel_class=vessel_class,
            basic_freight_amount=basic_freight,
        )

        async def _evaluate():
            repository = RuleRepository()
            try:
                return await evaluate_cargo(repository, cargo, _parse_date(as_of))
            finally:
                await repository.close()

        with console.status("[bold green]Evaluating carrier rules...[/bold green]"):
            result = _run(_evaluate())

        status = result.acceptance_status.value
        color = _STATUS_COLORS.get(status, "white")
        console.print(f"\nStatus: [{color}]{status}[/{color}]")

        table = Table(box=box.SIMPLE)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="bold")
        table.add_row("Vehicle category", result.classified_vehicle_category)
        table.add_row("Category group", result.matched_category_group or "-")
        table.add_row("Base LM", f"{result.chargeable_measure.base_lm:.4f}")
        table.add_row("Chargeable LM", f"{result.chargeable_measure.chargeable_lm:.4f}")
        table.add_row("CBM", f"{result.chargeable_measure.cbm:.3f}")
        table.add_row("Violations", ", ".join(result.violations) or "-")
        table.add_row("Approvals", ", ".join(result.approvals_required) or "-")
        table.add_row("Warnings", ", ".join(result.warnings) or "-")
        console.print(table)

        if result.surcharge_events:
            events = Table(title="Surcharge Events", box=box.ROUNDED)
            events.add_column("Event", style="cyan")
            events.add_column("Basis")
            events.add_column("Qty", justify="right")
            events.add_column("Amount", justify="right")
            events.add_column("Reason")
            for event in result.surcharge_events:
                events.add_row(
                    event.event_code,
                    event.amount_basis,
                    f"{event.qty:g}",
                    f"{event.amount:,.2f}",
                    event.reason,
                )
            console.print(events)

    except Exception as exc:
        err_console.print(f"Evaluation failed: {exc}")
        logger.exception("CLI evaluate command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: price-quotation
# ---------------------------------------------------------------------------


@app.command("price-quotation")
def price_quotation_cmd(
    quotation_id: int = typer.Argument(..., help="Quotation request id"),
    persist: bool = typer.Option(False, "--persist", help="Store the derived lines"),
    as_of: Optional[str] = typer.Option(None, "--as-of", help="Rule date YYYY-MM-DD"),
) -> None:
    """Price a stored quotation and show its lines."""
    from mercator.repository import RuleRepository
    from mercator.service import price_quotation

    try:
        async def _price():
            repository = RuleRepository()
            try:
                return await price_quotation(
                    repository, quotation_id, persist=persist, as_of=_parse_date(as_of)
                )
            finally:
                await repository.close()

        with console.status(f"[bold green]Pricing quotation {quotation_id}...[/bold green]"):
            result = _run(_price())

        if result is None:
            console.print(f"[yellow]Quotation {quotation_id} not found.[/yellow]")
            raise typer.Exit(1)

        table = Table(title=f"Quotation {quotation_id}", box=box.ROUNDED)
        table.add_column("Article", style="cyan")
        table.add_column("Source", style="dim")
        table.add_column("Unit")
        table.add_column("Qty", justify="right")
        table.add_column("Unit Price", justify="right")
        table.add_column("Margin", justify="right")
        table.add_column("Selling", justify="right", style="bold")
        for line in result.lines:
            table.add_row(
                str(line.article_id),
                line.source,
                line.unit_type,
                f"{line.quantity:g}",
                f"{line.unit_price:,.2f}",
                f"{line.margin:,.2f}",
                f"{line.selling_amount:,.2f}",
            )
        console.print(table)
        console.print(
            f"Total: [bold]{result.total_selling_amount:,.2f}[/bold]  "
            f"Profile: {result.pricing_profile_id or '-'}  VAT: {result.project_vat_code}"
        )
        for warning in result.warnings:
            console.print(f"  [yellow]- {warning}[/yellow]")
        if persist:
            console.print("[green]Lines stored.[/green]")

    except typer.Exit:
        raise
    except Exception as exc:
        err_console.print(f"Pricing failed: {exc}")
        logger.exception("CLI price-quotation command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: health
# ---------------------------------------------------------------------------


@app.command("health")
def health() -> None:
    """Run a system health check and display status."""
    console.print(Panel("[bold cyan]Mercator System Health Check[/bold cyan]", expand=False))

    try:
        from mercator.tasks import _health_check_async

        with console.status("[bold green]Running health checks...[/bold green]"):
            report = _run(_health_check_async())

        status = report.get("status", "unknown")
        status_colors = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}
        status_color = status_colors.get(status, "white")
        console.print(f"\nOverall Status: [{status_color}]{status.upper()}[/{status_color}]")

        table = Table(box=box.SIMPLE)
        table.add_column("Check", style="cyan")
        table.add_column("Result", style="bold")
        table.add_row("Database", str(report.get("database", "N/A")))
        table.add_row("Active Carriers", str(report.get("active_carriers", "N/A")))
        table.add_row("Active Rules", str(report.get("active_rules", "N/A")))
        table.add_row("Checked At", str(report.get("timestamp", "N/A")))
        console.print(table)

        issues = report.get("issues", [])
        if issues:
            console.print("\n[bold yellow]Issues:[/bold yellow]")
            for issue in issues:
                console.print(f"  [yellow]- {issue}[/yellow]")
        else:
            console.print("[green]No issues detected.[/green]")

    except Exception as exc:
        err_console.print(f"Health check failed: {exc}")
        logger.exception("CLI health command failed")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Command: serve
# ---------------------------------------------------------------------------


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
    port: int = typer.Option(settings.mercator_api_port, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the Mercator API with uvicorn."""
    import uvicorn

    console.print(f"[bold cyan]Mercator API[/bold cyan] on http://{host}:{port}")
    uvicorn.run(
        "mercator.api.routes:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
