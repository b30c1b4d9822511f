"""
Command-line interface for deferred-alerts.

Usage:
    deferred-alerts init-db   # Create the alerts table
    deferred-alerts serve     # Run the API server and alert engine
    deferred-alerts health    # Check service health
    deferred-alerts list      # Print stored alerts
"""

import asyncio
import json
import sys
from datetime import datetime, timezone

import click

from deferred_alerts.config.settings import get_settings
from deferred_alerts.observability.logging import setup_logging
from deferred_alerts.observability.metrics import get_metrics


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Deferred Alerts - scheduled notifications for realm owners."""
    setup_logging(level="DEBUG" if debug else None)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from deferred_alerts.alerts.repository import PostgresAlertStore
    from deferred_alerts.storage.database import Database

    async def run():
        async with Database() as db:
            await PostgresAlertStore(db).create_table()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of the alert store."""
    import structlog
    logger = structlog.get_logger()

    from deferred_alerts.alerts.config import AlertConfig

    async def check():
        results: dict[str, bool] = {}
        config = AlertConfig()

        if config.store_backend == "postgres":
            try:
                from deferred_alerts.storage.database import Database
                async with Database() as db:
                    results["postgres"] = await db.health_check()
            except Exception as e:
                results["postgres"] = False
                logger.error("Postgres health check failed", error=str(e))
        else:
            results["memory_store"] = True

        results["webhook_configured"] = bool(config.webhook_url)

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("postgres", "memory_store") and not status:
                all_healthy = False

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the API server and alert engine."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    # Start metrics server on separate port
    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "deferred_alerts.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("list")
@click.option("--realm", default=None, help="Only alerts of this realm (requires --owner-id)")
@click.option("--owner-id", default=None, type=int, help="Only alerts of this owner")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def list_alerts(realm: str | None, owner_id: int | None, as_json: bool) -> None:
    """Print stored alerts (PostgreSQL backend)."""
    from deferred_alerts.alerts.repository import PostgresAlertStore
    from deferred_alerts.alerts.schemas import Owner
    from deferred_alerts.storage.database import Database

    if (realm is None) != (owner_id is None):
        raise click.UsageError("--realm and --owner-id must be given together")
    owner = Owner(realm=realm, owner_id=owner_id) if realm is not None else None

    async def run():
        async with Database() as db:
            records = await PostgresAlertStore(db).get_all(owner)
        visible = [r for r in records if not r.pending_delete]

        if as_json:
            click.echo(json.dumps([r.to_dict() for r in visible], indent=2))
            return

        if not visible:
            click.echo("No alerts found")
            return

        click.echo(f"\n{'ID':>6}  {'Due (UTC)':<20} {'State':<10} Title")
        click.echo("-" * 60)
        for record in visible:
            due = datetime.fromtimestamp(record.payload.due_at / 1000, tz=timezone.utc)
            if record.handled:
                state = "handled"
            elif record.triggered:
                state = "triggered"
            else:
                state = "armed"
            click.echo(
                f"{record.id:>6}  {due:%Y-%m-%d %H:%M:%S}  {state:<10} {record.payload.title}"
            )
        click.echo(f"\n{len(visible)} alert(s)")

    asyncio.run(run())


if __name__ == "__main__":
    main()
