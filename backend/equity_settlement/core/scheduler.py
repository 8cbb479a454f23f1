"""
Background job queue.

Wraps an APScheduler BackgroundScheduler so services can enqueue one-shot
jobs with a delay (payout jobs are staggered this way).
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional
import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from equity_settlement.core.config import settings

logger = logging.getLogger(__name__)


class JobQueue:
    """Schedules delayed, fire-and-forget jobs."""

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None, timezone: Optional[str] = None):
        self.timezone = pytz.timezone(timezone or settings.SCHEDULER_TIMEZONE)
        self.scheduler = scheduler or BackgroundScheduler(timezone=self.timezone)

    def start(self):
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Job queue started")

    def perform_in(self, delay_seconds: float, func: Callable[..., Any], *args, job_id: Optional[str] = None):
        """
        Run ``func(*args)`` once, ``delay_seconds`` from now.

        Returns:
            The APScheduler Job
        """
        run_date = datetime.now(self.timezone) + timedelta(seconds=delay_seconds)
        job = self.scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=run_date, timezone=self.timezone),
            args=list(args),
            id=job_id,
            name=f"{getattr(func, '__name__', 'job')}{tuple(args)}",
            replace_existing=job_id is not None,
            misfire_grace_time=None,
        )
        logger.info(f"Enqueued {job.name} to run in {delay_seconds}s")
        return job

    def shutdown(self):
        """Shutdown the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Job queue stopped")


# Global job queue instance
_job_queue: Optional[JobQueue] = None


def get_job_queue() -> JobQueue:
    """Get or create the global job queue (not started until start_scheduler)."""
    global _job_queue
    if _job_queue is None:
        _job_queue = JobQueue()
    return _job_queue


def start_scheduler():
    """Start the background job queue."""
    queue = get_job_queue()
    queue.start()
    logger.info("Background scheduler started")


def stop_scheduler():
    """Stop the background job queue."""
    global _job_queue
    if _job_queue:
        _job_queue.shutdown()
        _job_queue = None
        logger.info("Background scheduler stopped")
