"""
AR aging command-line interface.
Built with Click; each command opens its own database session.
"""

import sys
from datetime import datetime

import click

from ar_aging.errors import ConfigurationError, SyncError
from ar_aging.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


@click.group()
@click.version_option(version="0.1.0", prog_name="ar-aging")
def cli():
    """Accounts-receivable aging: sync, snapshots and summaries."""
    configure_logging()


@cli.command("init-db")
def init_db_command():
    """Create any missing tables."""
    from ar_aging.db.session import init_db

    init_db()
    click.echo("Database initialized.")


@cli.command()
@click.option("--as", "caller", required=True, help="Identity recorded on the sync")
def sync(caller):
    """Pull open invoices from the invoicing API."""
    from ar_aging.sync.orchestrator import run_sync

    try:
        result = run_sync(caller)
    except (SyncError, ConfigurationError) as e:
        click.echo(f"Sync failed: {e}", err=True)
        sys.exit(1)
    click.echo(result.message)
    click.echo(f"  upserted={result.upserted} deleted={result.deleted} pages={result.pages}")


@cli.command()
@click.option("--date", "snapshot_date", default=None, help="Snapshot date (YYYY-MM-DD); defaults to month end")
@click.option("--as", "caller", default="cli", show_default=True, help="Identity recorded on the snapshots")
def snapshot(snapshot_date, caller):
    """Save monthly snapshots for every region."""
    from ar_aging.aggregation.snapshots import create_monthly_snapshots
    from ar_aging.db.invoices import load_invoices
    from ar_aging.db.session import get_db_session

    day = None
    if snapshot_date:
        try:
            day = datetime.strptime(snapshot_date, "%Y-%m-%d").date()
        except ValueError:
            raise click.BadParameter("expected YYYY-MM-DD", param_hint="--date")

    with get_db_session() as db:
        snapshots = create_monthly_snapshots(db, load_invoices(db), caller, snapshot_date=day)
    for data in snapshots:
        click.echo(
            f"{data.snapshot_date} {data.region:<10} {data.invoice_count:>6} invoices "
            f"{data.total_outstanding:>14,.2f}"
        )


@cli.command()
@click.option(
    "--region",
    type=click.Choice(["all", "phoenix", "las-vegas"]),
    default="all",
    show_default=True,
)
def summary(region):
    """Print bucket totals for a region."""
    from ar_aging.aggregation.summary import bucket_cards, summarize
    from ar_aging.db.invoices import load_invoices
    from ar_aging.db.session import get_db_session
    from ar_aging.db.system_settings import get_last_sync_time

    with get_db_session() as db:
        records = load_invoices(db)
        last_sync = get_last_sync_time(db)

    click.echo(f"Region: {region}   Last sync: {last_sync.isoformat() if last_sync else 'never'}")
    for card in bucket_cards(summarize(records, region)):
        click.echo(f"{card['label']:<16} {card['count']:>6} {card['value']:>14,.2f}")


@cli.command()
def schedule():
    """Run the sync and snapshot scheduler with the metrics endpoint."""
    from ar_aging.scheduler.scheduler import main as scheduler_main

    try:
        scheduler_main()
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
