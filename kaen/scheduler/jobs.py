"""APScheduler job management for discussion polling.

A single ``BackgroundScheduler`` is started and stopped with the FastAPI
lifespan.  Each open discussion with polling enabled registers one
``IntervalTrigger`` job, removed again when the discussion is closed.  One
more job closes discussions that nobody has read for a while.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from kaen.core.constants import IDLE_SWEEP_INTERVAL_SECONDS, IDLE_SWEEP_JOB_ID

logger = logging.getLogger(__name__)

# Module-level scheduler instance (singleton)
scheduler = BackgroundScheduler()


def start_scheduler() -> None:
    """Start the background scheduler if it is not running yet."""
    if not scheduler.running:
        scheduler.start()
        logger.info("scheduler_started")


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully.

    Called during FastAPI lifespan cleanup.
    """
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def is_scheduler_running() -> bool:
    """Check if the scheduler is currently running."""
    return scheduler.running


def add_poll_job(job_id: str, func: Callable[[], None], seconds: float) -> None:
    """Run *func* every *seconds* under *job_id*, replacing any previous job."""
    scheduler.add_job(
        func,
        IntervalTrigger(seconds=seconds),
        id=job_id,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info("poll_job_added", extra={"job_id": job_id, "interval_seconds": seconds})


def remove_poll_job(job_id: str) -> None:
    """Remove *job_id*; removing an unknown job is a no-op."""
    try:
        scheduler.remove_job(job_id)
    except JobLookupError:
        return
    logger.info("poll_job_removed", extra={"job_id": job_id})


def add_idle_sweep_job(func: Callable[[float], object], idle_seconds: float) -> None:
    """Periodically call ``func(idle_seconds)`` to close abandoned discussions."""
    scheduler.add_job(
        func,
        IntervalTrigger(seconds=min(IDLE_SWEEP_INTERVAL_SECONDS, idle_seconds)),
        args=[idle_seconds],
        id=IDLE_SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info("idle_sweep_job_added", extra={"idle_seconds": idle_seconds})
