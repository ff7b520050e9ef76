"""APScheduler-based periodic sweep of expired usage sessions.

Request handlers never clean sessions themselves. The sweep runs here on a
fixed interval, and ``POST /api/session/cleanup`` stays available for an
external cron.
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from starlette.concurrency import run_in_threadpool

from app.services.sessions import clean_expired
from app.services.storage import open_storage

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _sweep_expired_sessions() -> int:
    with open_storage() as storage:
        return clean_expired(storage)


async def sweep_expired_sessions():
    """Scheduler callback, runs the blocking sweep off the event loop."""
    try:
        await run_in_threadpool(_sweep_expired_sessions)
    except Exception:
        logger.exception("Expired-session sweep failed")


def start_scheduler(interval_minutes: int):
    """Start the session sweep. ``interval_minutes <= 0`` leaves it disabled."""
    if interval_minutes <= 0:
        logger.info("Session sweep disabled (SESSION_CLEANUP_INTERVAL_MINUTES=0)")
        return
    scheduler.add_job(
        sweep_expired_sessions,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id="session_cleanup",
        name="Expired Session Cleanup",
        replace_existing=True,
        max_instances=1,  # Prevent overlapping runs
    )
    scheduler.start()
    logger.info(f"Scheduler started, expired sessions swept every {interval_minutes}m")


def stop_scheduler():
    """Shut down the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
