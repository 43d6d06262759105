# backend/payflow/repositories/booking_repository.py
"""
Booking Repository for the payment orchestrator.

Data access for bookings and their appointments: lookups used by the
cancellation and no-show handlers, guarded status transitions, and the
candidate query of the balance notification job.
"""

from datetime import datetime, timedelta
import logging
from typing import List, Optional, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.exceptions import ConflictError, RepositoryException
from ..core.money import utcnow
from ..models.booking import Appointment, Booking, BookingStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking and appointment data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_appointment_by_id(self, appointment_id: str) -> Optional[Appointment]:
        try:
            return self.db.get(Appointment, appointment_id)
        except Exception as e:
            self.logger.error(f"Failed to get appointment {appointment_id}: {str(e)}")
            raise RepositoryException(f"Failed to get appointment: {str(e)}")

    def get_appointment_by_booking_id(self, booking_id: str) -> Optional[Appointment]:
        try:
            stmt = select(Appointment).where(Appointment.booking_id == booking_id)
            return cast(Optional[Appointment], self.db.execute(stmt).scalar_one_or_none())
        except Exception as e:
            self.logger.error(f"Failed to get appointment for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to get appointment by booking: {str(e)}")

    def mark_booking_cancelled(
        self,
        booking_id: str,
        reason: str,
        status: BookingStatus = BookingStatus.CANCELLED,
        cancelled_by: Optional[str] = None,
    ) -> None:
        """confirmed -> cancelled (or no_show). Raises ConflictError if already moved."""
        matched = self._guarded_update(
            booking_id,
            [Booking.status == BookingStatus.CONFIRMED.value],
            {
                "status": status.value,
                "cancelled_at": utcnow(),
                "cancellation_reason": reason,
                "cancelled_by": cancelled_by,
            },
        )
        if matched == 0:
            raise ConflictError(
                "Booking is no longer confirmed",
                payment_id=None,
                expected_status=BookingStatus.CONFIRMED.value,
            )

    def mark_appointment_cancelled(self, appointment_id: str) -> None:
        if self._update_appointment(appointment_id, {"cancelled_at": utcnow()}) == 0:
            raise ConflictError("Appointment is already cancelled")

    def mark_no_show(self, appointment_id: str) -> None:
        """Guarded on ``cancelled_at IS NULL``: a cancelled appointment cannot become a no-show."""
        if self._update_appointment(appointment_id, {"is_no_show": True}) == 0:
            raise ConflictError("Appointment is already cancelled")

    def find_appointments_needing_balance_notification(
        self, limit: int, now: Optional[datetime] = None, delay_hours: int = 2
    ) -> List[Appointment]:
        """
        Appointments that ended at least ``delay_hours`` ago and were attended.

        Cancelled and no-show appointments, cancelled bookings, and
        appointments already notified are excluded.
        """
        cutoff = (now or utcnow()) - timedelta(hours=delay_hours)
        try:
            stmt = (
                select(Appointment)
                .join(Booking, Booking.id == Appointment.booking_id)
                .where(Appointment.end_time <= cutoff)
                .where(Appointment.cancelled_at.is_(None))
                .where(Appointment.is_no_show.is_(False))
                .where(Appointment.balance_notification_sent_at.is_(None))
                .where(Booking.status == BookingStatus.CONFIRMED.value)
                .order_by(Appointment.end_time.asc(), Appointment.id.asc())
                .limit(limit)
            )
            return list(self.db.execute(stmt).scalars().all())
        except Exception as e:
            self.logger.error(f"Failed to query appointments needing notification: {str(e)}")
            raise RepositoryException(
                f"Failed to query appointments needing balance notification: {str(e)}"
            )

    def mark_balance_notification_sent(self, appointment_id: str) -> None:
        """Stamp the appointment; a second stamp is a ConflictError."""
        matched = self._update_appointment(
            appointment_id,
            {"balance_notification_sent_at": utcnow()},
            extra_guards=[Appointment.balance_notification_sent_at.is_(None)],
        )
        if matched == 0:
            raise ConflictError("Balance notification already sent")

    def _update_appointment(
        self, appointment_id: str, values: dict, extra_guards: Optional[list] = None
    ) -> int:
        guards = [Appointment.cancelled_at.is_(None), Appointment.is_no_show.is_(False)]
        guards.extend(extra_guards or [])
        appointments = BaseRepository(self.db, Appointment)
        return appointments._guarded_update(appointment_id, guards, values)
