"""
Background job scheduler using APScheduler.

The only recurring job is booking expiry: bookings still awaiting payment
after their slot has passed are cancelled. The job's updates are conditional
on the booking still being pending, so overlapping runs across processes
cannot cancel anything twice.

Usage:
    scheduler = get_scheduler()
    register_booking_jobs(scheduler)
    scheduler.start()
"""
import logging
from typing import Optional, Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_EXECUTED, EVENT_JOB_ERROR

from servicehub.lib.db import get_db_context
from servicehub.lib.payment_gateway import get_payment_gateway
from servicehub.lib.settings import settings
from servicehub.services.booking_service import BookingService

logger = logging.getLogger(__name__)

BOOKING_EXPIRY_JOB_ID = "booking_expiry"

# Singleton scheduler instance
_scheduler: Optional["SchedulerManager"] = None


def run_booking_expiry() -> int:
    """Expire stale unpaid bookings in a fresh session. Returns the count."""
    with get_db_context() as db:
        expired = BookingService(db, get_payment_gateway()).expire_stale_bookings()
    logger.info(f"Booking expiry run finished: {expired} booking(s) expired")
    return expired


class SchedulerManager:
    """
    Manager for APScheduler with lifecycle management.
    """

    def __init__(self):
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={
                'coalesce': True,  # Combine missed runs
                'max_instances': 1,  # Only one instance per job
                'misfire_grace_time': 300,  # 5 minutes grace period
            }
        )

        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

        logger.info("SchedulerManager initialized")

    def _on_job_executed(self, event):
        logger.info(f"Job {event.job_id} executed successfully (result: {event.retval})")

    def _on_job_error(self, event):
        logger.error(
            f"Job {event.job_id} raised {event.exception.__class__.__name__}: "
            f"{event.exception}",
            exc_info=event.exception
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the scheduler."""
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Scheduler started")
        else:
            logger.warning("Scheduler already running")

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: Whether to wait for running jobs to finish
        """
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Scheduler shutdown")
        else:
            logger.warning("Scheduler not running")

    def add_interval_job(
        self,
        func: Callable,
        job_id: str,
        seconds: Optional[int] = None,
        minutes: Optional[int] = None,
        hours: Optional[int] = None,
        **kwargs
    ) -> None:
        """
        Add an interval-scheduled job.

        Args:
            func: Job function
            job_id: Unique job identifier
            seconds: Interval in seconds
            minutes: Interval in minutes
            hours: Interval in hours
            **kwargs: Additional APScheduler job options
        """
        if not any([seconds, minutes, hours]):
            raise ValueError("At least one of seconds, minutes, or hours must be specified")

        trigger = IntervalTrigger(
            seconds=seconds or 0,
            minutes=minutes or 0,
            hours=hours or 0,
            timezone="UTC"
        )

        self.scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            **kwargs
        )

        logger.info(
            f"Added interval job: {job_id} "
            f"(seconds={seconds}, minutes={minutes}, hours={hours})"
        )

    def remove_job(self, job_id: str) -> None:
        self.scheduler.remove_job(job_id)
        logger.info(f"Removed job: {job_id}")

    def get_jobs(self) -> list:
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()


def register_booking_jobs(manager: "SchedulerManager") -> None:
    """Schedule the booking expiry job at the configured interval."""
    manager.add_interval_job(
        run_booking_expiry,
        job_id=BOOKING_EXPIRY_JOB_ID,
        minutes=settings.booking_expiry_interval_minutes,
    )


def get_scheduler() -> SchedulerManager:
    """Get singleton scheduler instance."""
    global _scheduler

    if _scheduler is None:
        _scheduler = SchedulerManager()

    return _scheduler
