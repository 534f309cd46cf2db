#!/usr/bin/env python3
"""Command Line Interface for the Brokerage Engine.

Usage:
    cd src
    python cli.py server        # Start API server
    python cli.py init-db       # Create missing tables
    python cli.py deal-stats    # Deal counts and completed-sale totals
    python cli.py most-viewed   # Most viewed properties
    python cli.py info          # Show configuration
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer
import uvicorn

from core.config import get_settings
from core.logging_config import get_logger, setup_logging
from core.db import get_readonly_session

LOGGER = get_logger(__name__)
SETTINGS = get_settings()

app = typer.Typer(help="Brokerage Engine CLI")


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Brokerage Engine - listings, inquiries, deals and view analytics."""
    log_level = "DEBUG" if verbose else SETTINGS.log_level
    setup_logging(level=log_level, json_format=SETTINGS.log_format == "json")


# =============================================================================
# Server Commands
# =============================================================================


@app.command("server")
def run_server(
    host: str = typer.Option("0.0.0.0", help="Host to bind to"),
    port: int = typer.Option(SETTINGS.api_port, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server."""
    typer.echo(f"Starting API server on {host}:{port}...")
    uvicorn.run("api.app:app", host=host, port=port, reload=reload)


# =============================================================================
# Database Commands
# =============================================================================


@app.command("init-db")
def init_database() -> None:
    """Create any missing tables (use alembic for schema upgrades)."""
    from core.db import init_db, validate_database

    result = init_db()
    if result["status"] != "success":
        typer.secho(f"✗ Database initialization failed: {result.get('error')}", fg="red")
        raise typer.Exit(1)

    created = result["tables_created"]
    typer.secho(f"✓ Created {len(created)} tables", fg="green")
    for table in created:
        typer.echo(f"  + {table}")

    status = validate_database()
    if status["status"] != "ok":
        typer.secho(f"✗ Validation failed: {status['errors']}", fg="red")
        raise typer.Exit(1)


# =============================================================================
# Reporting Commands
# =============================================================================


@app.command("deal-stats")
def deal_stats(
    agent_id: Optional[int] = typer.Option(None, help="Only deals handled by this agent"),
    from_date: Optional[datetime] = typer.Option(None, help="Deals created on or after"),
    to_date: Optional[datetime] = typer.Option(None, help="Deals created on or before"),
) -> None:
    """Show deal counts and completed-sale totals."""
    from domain.deals import DealService

    with get_readonly_session() as session:
        stats = DealService(session).get_statistics(agent_id, from_date, to_date)

    typer.echo("Deal Statistics:")
    typer.echo(f"  Total: {stats.total_deals}")
    typer.echo(f"  Pending: {stats.pending_deals}")
    typer.echo(f"  Completed: {stats.completed_deals}")
    typer.echo(f"  Cancelled: {stats.cancelled_deals}")
    typer.echo(f"  Revenue: {stats.total_revenue:,.2f}")
    typer.echo(f"  Commission: {stats.total_commission:,.2f}")
    typer.echo(f"  Average Sale Price: {stats.average_sale_price:,.2f}")
    typer.echo(f"  Average Commission: {stats.average_commission:,.2f}")


@app.command("most-viewed")
def most_viewed(
    top: int = typer.Option(SETTINGS.most_viewed_default_top, help="Number of properties"),
    from_date: Optional[datetime] = typer.Option(None, help="Views on or after"),
    to_date: Optional[datetime] = typer.Option(None, help="Views on or before"),
) -> None:
    """Show the most viewed properties."""
    from domain.analytics import ViewAnalyticsService

    with get_readonly_session() as session:
        stats = ViewAnalyticsService(session).most_viewed(top, from_date, to_date)

    if not stats:
        typer.echo("No views recorded.")
        return

    typer.echo(f"Most Viewed Properties (top {top}):")
    for rank, row in enumerate(stats, start=1):
        last_seen = row.last_viewed_at.isoformat() if row.last_viewed_at else "-"
        typer.echo(
            f"  {rank}. [{row.property_id}] {row.property_title} ({row.property_city or '-'}): "
            f"{row.view_count} views, last {last_seen}"
        )


# =============================================================================
# Utility Commands
# =============================================================================


@app.command("info")
def show_info() -> None:
    """Show application configuration info."""
    typer.echo("Brokerage Engine Configuration:")
    typer.echo(f"  Environment: {SETTINGS.environment}")
    typer.echo(f"  Database: {'SQLite' if SETTINGS.is_sqlite() else 'server'}")
    typer.echo(f"  Log Level: {SETTINGS.log_level}")
    typer.echo(f"  Default Commission Rate: {SETTINGS.default_commission_rate}%")
    typer.echo(f"  View Dedup Window: {SETTINGS.view_dedup_window_minutes} min")
    typer.echo(f"  Most Viewed Default Top: {SETTINGS.most_viewed_default_top}")


if __name__ == "__main__":
    app()
