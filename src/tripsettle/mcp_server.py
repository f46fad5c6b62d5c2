"""MCP server for tripsettle: exposes trip settlement as tools."""

import logging
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .exceptions import SettlementInvariantViolation, TripSettleError
from .models import SettlementResult, Trip
from .settle.service import SettlementService
from .store import JsonTripStore

logger = logging.getLogger(__name__)

mcp_app = FastMCP("tripsettle")

WORKFLOW_INSTRUCTIONS = """\
You are helping a group settle the shared expenses of a trip.

1. DISCOVER: Call list_trips and pick the trip the user is asking about.
2. SETTLE: Call settle_trip with the trip id. Use the default strategy unless
   the user wants payments that map to expenses people actually shared; then
   use strategy "direct_pairwise".
3. EXPLAIN: Present each settlement as "X pays Y amount" and mention anyone
   who is already settled.

For "where did the money go" questions, call trip_summary instead.

If a tool reports an internal consistency error, do not present any
settlement; show the error to the user instead.\
"""


# ---------------------------------------------------------------------------
# Session state: one MCP server process = one conversation
# ---------------------------------------------------------------------------


@dataclass
class SessionState:
    """Holds the lazily created service between tool calls."""

    service: SettlementService | None = None


_state = SessionState()


def _ensure_service() -> SettlementService:
    """Lazily initialize the SettlementService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.service = SettlementService(settings, JsonTripStore(settings.trips_path))
        logger.info(f"Serving trips from {settings.trips_path}")
    return _state.service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_result(trip: Trip, result: SettlementResult, symbol: str) -> list[str]:
    """Render a settlement result as plain text lines."""
    lines = [
        f"{trip.name} (strategy: {result.strategy})",
        f"  Total expenses: {symbol}{result.total_expenses:,.2f}",
        "",
        "Net balances:",
    ]
    for member_id, balance in result.net_balances.items():
        lines.append(f"  {trip.display_name(member_id)}: {balance:+,.2f}")

    lines.append("")
    if not result.settlements:
        lines.append("Everyone is settled up.")
    else:
        lines.append(f"Settlements ({len(result.settlements)}):")
        for s in result.settlements:
            lines.append(
                f"  {trip.display_name(s.from_member)} pays "
                f"{trip.display_name(s.to_member)} {symbol}{s.amount:,.2f}"
            )
    if result.skipped_expenses:
        lines.append(
            f"Skipped {len(result.skipped_expenses)} expense(s) with no beneficiaries."
        )
    return lines


def _format_error(e: TripSettleError) -> str:
    if isinstance(e, SettlementInvariantViolation):
        return f"Internal consistency error (do not settle): {e}"
    return f"Error: {e}"


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_trips() -> str:
    """List trips available for settlement."""
    try:
        service = _ensure_service()
        trips = service.list_trips()

        if not trips:
            return "No trips found."

        lines = ["Trips:"]
        for trip in trips:
            lines.append(
                f"  [{trip.id}] {trip.name} | {len(trip.roster())} members | "
                f"{len(trip.expenses)} expenses"
            )
        return "\n".join(lines)
    except TripSettleError as e:
        return _format_error(e)


@mcp_app.tool()
def settle_trip(trip_id: str, strategy: str | None = None) -> str:
    """Compute who pays whom to settle a trip.

    Args:
        trip_id: Trip id from list_trips.
        strategy: "net_balance_greedy" (fewest payments) or "direct_pairwise"
            (payments follow shared expenses). Defaults to the configured one.
    """
    try:
        service = _ensure_service()
        trip = service.get_trip(trip_id)
        result = service.settle_trip(trip_id, strategy)
        return "\n".join(
            _format_result(trip, result, service.settings.currency_symbol)
        )
    except TripSettleError as e:
        return _format_error(e)


@mcp_app.tool()
def compare_strategies(trip_id: str) -> str:
    """Run both settlement strategies on a trip and report the differences.

    Args:
        trip_id: Trip id from list_trips.
    """
    try:
        service = _ensure_service()
        trip = service.get_trip(trip_id)
        comparison = service.compare_strategies(trip_id)
        symbol = service.settings.currency_symbol

        lines = _format_result(trip, comparison.greedy, symbol)
        lines.append("")
        lines.extend(_format_result(trip, comparison.direct, symbol))
        lines.append("")
        lines.append(
            "Net balances agree."
            if comparison.balances_agree
            else "WARNING: strategies disagree on net balances."
        )
        return "\n".join(lines)
    except TripSettleError as e:
        return _format_error(e)


@mcp_app.tool()
def trip_summary(trip_id: str) -> str:
    """Show total spending for a trip, broken down by category and payer.

    Args:
        trip_id: Trip id from list_trips.
    """
    try:
        service = _ensure_service()
        trip = service.get_trip(trip_id)
        summary = service.summarize_trip(trip_id)
        symbol = service.settings.currency_symbol

        lines = [
            f"{trip.name}",
            f"  Total spent: {symbol}{summary.total_spent:,.2f} "
            f"({summary.expense_count} expenses)",
            "",
            "By category:",
        ]
        for category, amount in summary.by_category.items():
            lines.append(f"  {category.capitalize()}: {symbol}{amount:,.2f}")
        lines.append("")
        lines.append("By payer:")
        for member_id, amount in summary.by_payer.items():
            lines.append(f"  {trip.display_name(member_id)}: {symbol}{amount:,.2f}")
        return "\n".join(lines)
    except TripSettleError as e:
        return _format_error(e)


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def settle_workflow() -> str:
    """Orchestration instructions for settling a trip."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
