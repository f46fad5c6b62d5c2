"""CLI commands for computing trip settlements."""

import json
import logging
import sys
from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table

from ..config import load_settings
from ..exceptions import SettlementInvariantViolation, TripSettleError
from ..models import SettlementResult, Trip
from ..store import JsonTripStore
from .service import SettlementService
from .strategies import STRATEGIES

app = typer.Typer(
    name="settle",
    help="Compute who pays whom to settle a trip",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _build_service() -> SettlementService:
    settings = load_settings()
    return SettlementService(settings, JsonTripStore(settings.trips_path))


def _fail(error: Exception, verbose: bool):
    """Report an error and exit with status 1."""
    if isinstance(error, SettlementInvariantViolation):
        console.print(
            f"\n[bold red]Internal consistency error:[/bold red] {error}\n"
            "[dim]The settlement engine refused to return an invalid result.[/dim]"
        )
        for member, residual in error.residuals.items():
            console.print(f"  [red]{member}: {residual:+d} subunits[/red]")
    else:
        console.print(f"\n[bold red]Error:[/bold red] {error}")
    if verbose:
        raise error
    sys.exit(1)


def format_money(amount: Decimal, symbol: str = "₹", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: (₹85.02)
    Positive amounts have spaces:      ₹85.02
    """
    abs_amount = abs(amount)
    if amount < 0:
        if use_color:
            return f"({symbol}[red]{abs_amount:,.2f}[/red])"
        return f"({symbol}{abs_amount:,.2f})"
    if use_color:
        return f" [green]{symbol}{abs_amount:,.2f}[/green] "
    return f" {symbol}{abs_amount:,.2f} "


def display_result(trip: Trip, result: SettlementResult, symbol: str):
    """Display balances and settlement instructions as tables."""
    console.print(f"\n[bold]{trip.name}[/bold] [dim]({result.strategy})[/dim]")
    console.print(f"  Total expenses: {format_money(result.total_expenses, symbol)}")
    if result.skipped_expenses:
        console.print(
            f"  [yellow]Skipped {len(result.skipped_expenses)} expense(s) "
            f"with no beneficiaries[/yellow]"
        )
    console.print()

    balances = Table(title="Balances", show_header=True, header_style="bold magenta")
    balances.add_column("Member", style="cyan")
    balances.add_column("Paid", justify="right")
    balances.add_column("Share", justify="right")
    balances.add_column("Net", justify="right")

    totals = {t.member_id: t for t in result.member_totals}
    for member_id, net in result.net_balances.items():
        member_totals = totals.get(member_id)
        balances.add_row(
            trip.display_name(member_id),
            format_money(member_totals.paid, symbol, use_color=False)
            if member_totals
            else "—",
            format_money(member_totals.share, symbol, use_color=False)
            if member_totals
            else "—",
            format_money(net, symbol),
        )
    console.print(balances)

    if not result.settlements:
        console.print("\n[green]✓ Everyone is settled up[/green]")
        return

    transfers = Table(title="Settle Up", show_header=True, header_style="bold magenta")
    transfers.add_column("#", style="dim", width=4)
    transfers.add_column("From", style="cyan")
    transfers.add_column("To", style="cyan")
    transfers.add_column("Amount", justify="right")
    for i, settlement in enumerate(result.settlements, start=1):
        transfers.add_row(
            str(i),
            trip.display_name(settlement.from_member),
            trip.display_name(settlement.to_member),
            format_money(settlement.amount, symbol),
        )
    console.print(transfers)
    console.print(f"\n  Transfers needed: {len(result.settlements)}")


@app.command()
def show(
    trip_id: str = typer.Argument(..., help="Trip id in the trips directory"),
    strategy: str | None = typer.Option(
        None,
        "--strategy",
        "-s",
        help=f"Settlement strategy ({', '.join(STRATEGIES)})",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show balances and the payments that settle a trip.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        trip = service.get_trip(trip_id)
        result = service.settle_trip(trip_id, strategy)
    except TripSettleError as e:
        _fail(e, verbose)
        return

    if as_json:
        console.print_json(json.dumps(result.to_wire()))
        return

    display_result(trip, result, service.settings.currency_symbol)


@app.command()
def compare(
    trip_id: str = typer.Argument(..., help="Trip id in the trips directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Run both strategies on a trip and show them side by side.

    Net balances must match between strategies; transfers may differ.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        trip = service.get_trip(trip_id)
        comparison = service.compare_strategies(trip_id)
    except TripSettleError as e:
        _fail(e, verbose)
        return

    symbol = service.settings.currency_symbol
    display_result(trip, comparison.greedy, symbol)
    display_result(trip, comparison.direct, symbol)

    console.print()
    if comparison.balances_agree:
        console.print("[green]✓ Both strategies agree on every net balance[/green]")
    else:
        console.print("[red]✗ Strategies disagree on net balances[/red]")
        sys.exit(1)


@app.command()
def trips(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List trips available in the trips directory."""
    setup_logging(verbose)

    try:
        service = _build_service()
        all_trips = service.list_trips()
    except TripSettleError as e:
        _fail(e, verbose)
        return

    if not all_trips:
        console.print(
            f"[yellow]No trips found in {service.settings.trips_path}[/yellow]"
        )
        return

    table = Table(title="Trips", show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Members", justify="right")
    table.add_column("Expenses", justify="right")
    for trip in all_trips:
        table.add_row(
            trip.id, trip.name, str(len(trip.roster())), str(len(trip.expenses))
        )
    console.print(table)


@app.command()
def summary(
    trip_id: str = typer.Argument(..., help="Trip id in the trips directory"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw summary as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Show how much a trip cost, by category and by who paid.
    """
    setup_logging(verbose)

    try:
        service = _build_service()
        trip = service.get_trip(trip_id)
        trip_summary = service.summarize_trip(trip_id)
    except TripSettleError as e:
        _fail(e, verbose)
        return

    if as_json:
        console.print_json(json.dumps(trip_summary.to_wire()))
        return

    symbol = service.settings.currency_symbol
    console.print(f"\n[bold]{trip.name}[/bold]")
    console.print(
        f"  Total spent: {format_money(trip_summary.total_spent, symbol)}"
        f" [dim]({trip_summary.expense_count} expense(s))[/dim]\n"
    )

    if not trip_summary.expense_count:
        console.print("[yellow]No expenses recorded[/yellow]")
        return

    categories = Table(title="By Category", show_header=True, header_style="bold magenta")
    categories.add_column("Category", style="cyan")
    categories.add_column("Amount", justify="right")
    for category, amount in trip_summary.by_category.items():
        categories.add_row(
            category.capitalize(), format_money(amount, symbol, use_color=False)
        )
    console.print(categories)

    payers = Table(title="By Payer", show_header=True, header_style="bold magenta")
    payers.add_column("Member", style="cyan")
    payers.add_column("Paid", justify="right")
    for member_id, amount in trip_summary.by_payer.items():
        payers.add_row(
            trip.display_name(member_id), format_money(amount, symbol, use_color=False)
        )
    console.print(payers)
