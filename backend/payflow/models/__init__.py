"""
Database models for the payment lifecycle orchestrator.

- ProfessionalProfile: connected account, deposit and cancellation settings
- Booking / Appointment: the agreement and its time window
- Payment / PaymentEvent / StripeCustomer: payment state machine and audit trail
"""

from .booking import Appointment, AppointmentStatus, Booking, BookingStatus, CancellationInitiator
from .payment import CaptureMethod, Payment, PaymentEvent, PaymentStatus, StripeCustomer
from .professional import CancellationPolicy, DepositConfig, DepositType, ProfessionalProfile

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "Booking",
    "BookingStatus",
    "CancellationInitiator",
    "CancellationPolicy",
    "CaptureMethod",
    "DepositConfig",
    "DepositType",
    "Payment",
    "PaymentEvent",
    "PaymentStatus",
    "ProfessionalProfile",
    "StripeCustomer",
]
