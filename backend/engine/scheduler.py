"""APScheduler integration for FastAPI.

Runs the periodic wallet reconciliation job when
``settings.wallet_sync_interval_minutes`` is non-zero.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backend.services.custody_client import CustodyClient
from backend.services.wallet_repository import WalletRecordRepository

logger = logging.getLogger(__name__)

WALLET_SYNC_JOB_ID = "wallet_sync"

scheduler = AsyncIOScheduler()


def add_wallet_sync_job(client: CustodyClient, wallets: WalletRecordRepository, interval_minutes: int):
    """Add or replace the wallet reconciliation job."""
    from backend.engine.wallet_sync import sync_wallets

    scheduler.add_job(
        sync_wallets,
        trigger=IntervalTrigger(minutes=interval_minutes),
        args=[client, wallets],
        id=WALLET_SYNC_JOB_ID,
        name="Wallet sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled wallet sync every {interval_minutes}m")


def start_scheduler(client: CustodyClient, wallets: WalletRecordRepository, interval_minutes: int):
    """Start the scheduler, with the sync job if an interval is configured."""
    if interval_minutes > 0 and not client.mock_mode:
        add_wallet_sync_job(client, wallets, interval_minutes)
    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


def stop_scheduler():
    """Shut down the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


def get_scheduler_status() -> dict:
    """Return current scheduler state for the API."""
    jobs = scheduler.get_jobs()
    return {
        "running": scheduler.running,
        "job_count": len(jobs),
        "jobs": [
            {
                "id": j.id,
                "name": j.name,
                "next_run": str(j.next_run_time) if j.next_run_time else None,
                "trigger": str(j.trigger),
            }
            for j in jobs
        ],
    }
