# backend/payflow/models/booking.py
"""
Booking and appointment models.

A booking is the client-professional agreement; its appointment holds the
time window. The appointment status is derived from timestamps on read and
is never stored: "end_time < now and not cancelled" is completed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..core.money import ensure_utc, utcnow
from ..database import Base

if TYPE_CHECKING:
    from .payment import Payment
    from .professional import ProfessionalProfile


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "confirmed"  # Default - active booking
    CANCELLED = "cancelled"  # Cancelled by a human action
    NO_SHOW = "no_show"  # Client didn't attend


class CancellationInitiator(str, Enum):
    """Who asked for the cancellation. The policy binds clients only."""

    CLIENT = "client"
    PROFESSIONAL = "professional"


class AppointmentStatus(str, Enum):
    """Read-only status computed from appointment timestamps."""

    UPCOMING = "upcoming"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class Booking(Base):
    """One client-professional service agreement."""

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    client_id: Mapped[str] = mapped_column(String(26), nullable=False, index=True)
    professional_profile_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("professional_profiles.id"), nullable=False, index=True
    )

    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    deposit_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    is_online_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    professional: Mapped["ProfessionalProfile"] = relationship("ProfessionalProfile", back_populates="bookings")
    appointment: Mapped[Optional["Appointment"]] = relationship(
        "Appointment", back_populates="booking", uselist=False
    )
    payment: Mapped[Optional["Payment"]] = relationship("Payment", back_populates="booking", uselist=False)

    @property
    def is_direct_platform_payment(self) -> bool:
        """Cash booking with no deposit: nothing card-side belongs to the professional."""
        return not self.is_online_payment and Decimal(self.deposit_amount or 0) == 0

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, total={self.total_amount})>"


class Appointment(Base):
    """Time window for a booking. Never hard-deleted."""

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_no_show: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    balance_notification_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    booking: Mapped["Booking"] = relationship("Booking", back_populates="appointment")

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None or bool(self.is_no_show)

    def status_at(self, now: Optional[datetime] = None) -> AppointmentStatus:
        current = ensure_utc(now) if now is not None else utcnow()
        if self.is_no_show:
            return AppointmentStatus.NO_SHOW
        if self.cancelled_at is not None:
            return AppointmentStatus.CANCELLED
        if ensure_utc(self.end_time) < current:
            return AppointmentStatus.COMPLETED
        if ensure_utc(self.start_time) <= current:
            return AppointmentStatus.IN_PROGRESS
        return AppointmentStatus.UPCOMING

    @property
    def status(self) -> AppointmentStatus:
        return self.status_at()

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, booking_id={self.booking_id}, start={self.start_time})>"
