"""
Tests for the scheduler manager and the booking expiry job.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from servicehub.jobs.scheduler import (
    BOOKING_EXPIRY_JOB_ID,
    SchedulerManager,
    get_scheduler,
    register_booking_jobs,
    run_booking_expiry,
)
from servicehub.lib.dates import utcnow
from servicehub.models.bookings import Booking, BookingStatus
from servicehub.services.booking_service import BOOKING_EXPIRED_REASON, BookingService


@pytest.mark.unit
def test_scheduler_manager_initialization():
    manager = SchedulerManager()

    assert manager.scheduler is not None
    assert not manager.running


@pytest.mark.unit
def test_scheduler_manager_start_stop():
    manager = SchedulerManager()

    manager.start()
    assert manager.running

    manager.shutdown(wait=False)
    assert not manager.running


@pytest.mark.unit
def test_add_interval_job_requires_interval():
    manager = SchedulerManager()

    with pytest.raises(ValueError):
        manager.add_interval_job(lambda: None, job_id="no_interval")


@pytest.mark.unit
def test_scheduler_manager_remove_job():
    manager = SchedulerManager()
    manager.add_interval_job(lambda: None, job_id="test_remove", minutes=5)

    assert len(manager.get_jobs()) == 1

    manager.remove_job("test_remove")

    assert manager.get_jobs() == []


@pytest.mark.unit
def test_register_booking_jobs_uses_configured_interval():
    manager = SchedulerManager()

    with patch("servicehub.jobs.scheduler.settings") as settings:
        settings.booking_expiry_interval_minutes = 7
        register_booking_jobs(manager)

    jobs = manager.get_jobs()
    assert [job.id for job in jobs] == [BOOKING_EXPIRY_JOB_ID]
    assert isinstance(jobs[0].trigger, IntervalTrigger)
    assert jobs[0].trigger.interval == timedelta(minutes=7)
    assert jobs[0].func is run_booking_expiry


@pytest.mark.unit
def test_get_scheduler_singleton():
    assert get_scheduler() is get_scheduler()


@pytest.mark.unit
def test_scheduler_manager_event_listeners():
    manager = SchedulerManager()

    assert len(manager.scheduler._listeners) == 2


@pytest.mark.unit
def test_run_booking_expiry_cancels_past_unpaid_bookings(db_session, gateway, customer, service, booking_data):
    booking = BookingService(db_session, gateway).create_booking(
        customer.id, booking_data(service, hours_ahead=1)
    ).booking

    with patch("servicehub.jobs.scheduler.get_payment_gateway", return_value=gateway), \
            patch("servicehub.services.booking_service.utcnow", return_value=utcnow() + timedelta(hours=2)):
        expired = run_booking_expiry()

    assert expired == 1
    db_session.expire_all()
    stored = db_session.get(Booking, booking.id)
    assert stored.status == BookingStatus.CANCELLED
    assert stored.cancel_reason == BOOKING_EXPIRED_REASON


@pytest.mark.unit
def test_run_booking_expiry_leaves_future_bookings(db_session, gateway, customer, service, booking_data):
    BookingService(db_session, gateway).create_booking(customer.id, booking_data(service, hours_ahead=48))

    with patch("servicehub.jobs.scheduler.get_payment_gateway", return_value=gateway):
        assert run_booking_expiry() == 0
