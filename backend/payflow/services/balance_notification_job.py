"""Notifies clients that an attended appointment is complete, once, a few hours after it ends."""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.money import utcnow
from ..models.booking import Appointment
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .batch_runner import BatchJobResult, BatchJobRunner
from .notification_service import APPOINTMENT_COMPLETED, NotificationService

JOB_NAME = "balance-notifications"


class BalanceNotificationJob(BaseService):
    def __init__(
        self,
        db: Session,
        notifier: NotificationService,
        runner: Optional[BatchJobRunner] = None,
        delay_hours: Optional[int] = None,
    ):
        super().__init__(db)
        self.notifier = notifier
        self.runner = runner or BatchJobRunner()
        self.delay_hours = (
            delay_hours if delay_hours is not None else settings.balance_notification_delay_hours
        )
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    @BaseService.measure_operation("balance_notification_batch")
    def run(self, now: Optional[datetime] = None, limit: Optional[int] = None) -> BatchJobResult:
        current = now or utcnow()
        batch_limit = limit or settings.batch_limit
        return self.runner.run(
            JOB_NAME,
            fetch=lambda: self.booking_repository.find_appointments_needing_balance_notification(
                batch_limit, current, self.delay_hours
            ),
            handle=self.notify_completed,
            key=lambda appointment: appointment.booking_id,
        )

    def notify_completed(self, appointment: Appointment) -> None:
        # Synchronous: the appointment is stamped only after delivery succeeded
        self.notifier.notify(appointment.booking_id, APPOINTMENT_COMPLETED)
        with self.transaction():
            self.booking_repository.mark_balance_notification_sent(appointment.id)
        self.logger.info(f"[CRON] Sent completion notice for booking {appointment.booking_id}")
