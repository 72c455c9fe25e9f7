"""
Scheduled Job Configuration

Configures periodic housekeeping jobs using APScheduler:
- Expired recommendation sweep daily at RECOMMENDATION_SWEEP_HOUR (3 AM UTC)

Execution Context:
    The scheduler runs IN-PROCESS with FastAPI. It is started/stopped via
    FastAPI's lifespan context manager in learnpath/main.py.

Limitations:
    - Single instance only: if you scale to multiple backend replicas,
      each replica runs its own scheduler. The sweep is idempotent, so
      duplicate runs are harmless.

Usage:
    # Automatic (via FastAPI lifespan in main.py):
    start_scheduler()  # On app startup
    stop_scheduler()   # On app shutdown

    # Run the sweep directly:
    await sweep_expired_recommendations()
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from learnpath.config import settings

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def sweep_expired_recommendations() -> int:
    """Count (and optionally delete) recommendations past their expiry."""
    # Deferred imports: avoid loading DB and service modules until job execution.
    from learnpath.db.base import async_session_maker
    from learnpath.services.learning.recommendation_service import RecommendationService

    async with async_session_maker() as db:
        count = await RecommendationService(db).expire_stale()
    logger.info(f"Recommendation sweep complete: {count} expired")
    return count


def setup_scheduled_jobs() -> None:
    """Configure all scheduled jobs."""
    scheduler.add_job(
        sweep_expired_recommendations,
        CronTrigger(hour=settings.RECOMMENDATION_SWEEP_HOUR, minute=0),
        id="recommendation_sweep",
        name="Expired Recommendation Sweep",
        replace_existing=True,
        misfire_grace_time=3600,  # Allow 1 hour grace period
    )

    logger.info("Scheduled jobs configured:")
    logger.info(
        f"  - Recommendation sweep: daily at {settings.RECOMMENDATION_SWEEP_HOUR:02d}:00 UTC"
    )


def start_scheduler() -> None:
    """Start the scheduler and configure jobs."""
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    setup_scheduled_jobs()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if not scheduler.running:
        logger.warning("Scheduler not running")
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def get_scheduled_jobs() -> list[dict]:
    """Get list of scheduled jobs with their next run times."""
    jobs = []
    for job in scheduler.get_jobs():
        # Pending jobs (scheduler not started) have no next_run_time yet
        next_run = getattr(job, "next_run_time", None)
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            }
        )
    return jobs

