from datetime import timedelta

import pytest

from payflow.repositories import BookingRepository
from payflow.services.balance_notification_job import BalanceNotificationJob
from payflow.services.notification_service import APPOINTMENT_COMPLETED


@pytest.fixture
def job(db, notifier):
    return BalanceNotificationJob(db, notifier, delay_hours=2)


def _finished(seed, now, hours_ago=3):
    return seed.booking(start=now - timedelta(hours=hours_ago + 1))


class TestBalanceNotificationJob:
    def test_notifies_and_stamps(self, job, seed, db, notifier, now):
        booking = _finished(seed, now)

        result = job.run(now=now)

        assert result.processed == 1
        assert notifier.sent == [(booking.id, APPOINTMENT_COMPLETED)]
        appointment = BookingRepository(db).get_appointment_by_booking_id(booking.id)
        db.refresh(appointment)
        assert appointment.balance_notification_sent_at is not None

    def test_second_run_sends_nothing(self, job, seed, notifier, now):
        _finished(seed, now)

        job.run(now=now)
        second = job.run(now=now + timedelta(hours=1))

        assert second.total == 0
        assert len(notifier.sent) == 1

    def test_recently_finished_appointments_wait(self, job, seed, notifier, now):
        _finished(seed, now, hours_ago=1)

        result = job.run(now=now)

        assert result.total == 0
        assert notifier.sent == []

    def test_delivery_failure_leaves_appointment_unstamped(self, db, seed, failing_notifier, now):
        booking = _finished(seed, now)
        job = BalanceNotificationJob(db, failing_notifier, delay_hours=2)

        result = job.run(now=now)

        assert result.errors == 1
        assert result.error_details == [f"{booking.id}: notification channel down"]
        appointment = BookingRepository(db).get_appointment_by_booking_id(booking.id)
        assert appointment.balance_notification_sent_at is None
