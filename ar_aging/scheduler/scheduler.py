"""Scheduler using APScheduler to run the nightly invoice sync and month-end snapshots."""

import time

from apscheduler.schedulers.background import BackgroundScheduler
from prometheus_client import start_http_server

from ar_aging.aggregation.snapshots import create_monthly_snapshots
from ar_aging.config import load_settings
from ar_aging.db.invoices import load_invoices
from ar_aging.db.session import get_db_session
from ar_aging.errors import SyncError
from ar_aging.logging_config import configure_logging, get_logger
from ar_aging.sync.orchestrator import run_sync

logger = get_logger(__name__)

SCHEDULER_IDENTITY = "scheduler"


def sync_job():
    """Job that pulls the open invoices from the invoicing API.

    Failures are logged; the next scheduled run retries from scratch.

    Returns:
        None
    """
    try:
        result = run_sync(SCHEDULER_IDENTITY)
        logger.info(f"Sync job completed: {result.message}", extra={"caller": SCHEDULER_IDENTITY})
    except SyncError as e:
        logger.exception(f"Sync job failed: {e}", extra={"caller": SCHEDULER_IDENTITY})


def snapshot_job():
    """Job that records the month-end snapshot for every region.

    Returns:
        None
    """
    try:
        with get_db_session() as db:
            records = load_invoices(db)
            snapshots = create_monthly_snapshots(db, records, SCHEDULER_IDENTITY)
        logger.info(f"Snapshot job completed: {len(snapshots)} snapshots saved")
    except Exception as e:
        logger.exception(f"Snapshot job failed: {e}", extra={"caller": SCHEDULER_IDENTITY})
        # No need to rollback as the context manager handles it


def build_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(sync_job, "cron", hour=2, minute=0, id="invoice_sync", max_instances=1)
    scheduler.add_job(snapshot_job, "cron", day="last", hour=23, minute=30, id="month_end_snapshot")
    return scheduler


def start_scheduler():
    """Start the APScheduler with the sync and snapshot jobs.

    The sync runs nightly at 02:00 UTC and the snapshot on the last day of each
    month at 23:30 UTC. Blocks until interrupted.

    Returns:
        None
    """
    scheduler = build_scheduler()
    scheduler.start()
    logger.info(f"Scheduler started. Next runs: {scheduler.get_jobs()}")
    try:
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
        logger.info("Scheduler stopped.")


def main():
    configure_logging()
    settings = load_settings()
    start_http_server(settings.metrics_port)
    start_scheduler()


if __name__ == "__main__":
    main()
