"""CLI for tripsettle."""

import typer

from .mcp_server import run_server
from .settle.cli import app as settle_app

app = typer.Typer(
    name="tripsettle",
    help="Settle shared trip expenses with as few payments as practical",
)

app.add_typer(settle_app, name="settle", help="Trip balances and settlements")


@app.command()
def mcp():
    """Start the MCP server exposing settlement tools."""
    run_server()


if __name__ == "__main__":
    app()
