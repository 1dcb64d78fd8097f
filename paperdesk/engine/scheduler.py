"""APScheduler integration for FastAPI.

Runs the reconciliation job on a fixed interval inside the API process.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from paperdesk.utils.constants import INTERVAL_HOURS

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile"

scheduler = AsyncIOScheduler()


def _get_trigger(interval: str) -> IntervalTrigger:
    # Support arbitrary "<N>m" schedule intervals
    if interval.endswith("m") and interval[:-1].isdigit():
        return IntervalTrigger(minutes=int(interval[:-1]))
    hours = INTERVAL_HOURS.get(interval, 4.0)
    if hours < 1:
        return IntervalTrigger(minutes=int(hours * 60))
    return IntervalTrigger(hours=hours)


def add_reconcile_job(runtime, interval: str):
    """Add or replace the reconciliation job."""
    scheduler.add_job(
        runtime.reconcile_job.run_cycle,
        trigger=_get_trigger(interval),
        id=RECONCILE_JOB_ID,
        name="Reconcile open trades",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=60,
    )
    logger.info(f"Scheduled reconciliation every {interval}")


def start_scheduler(runtime):
    """Start the scheduler with the reconciliation job."""
    add_reconcile_job(runtime, runtime.settings.reconcile_interval)
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
