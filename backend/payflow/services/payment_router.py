"""Decides where the funds of a payment land: the platform or a connected account."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from ..core.exceptions import ConfigurationError
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.professional import ProfessionalProfile

logger = logging.getLogger(__name__)

PLATFORM = "platform"
CONNECTED_ACCOUNT = "connected_account"


@dataclass(frozen=True)
class RouteTarget:
    kind: str
    account_id: str | None = None

    @classmethod
    def platform(cls) -> "RouteTarget":
        return cls(kind=PLATFORM)

    @classmethod
    def connected_account(cls, account_id: str) -> "RouteTarget":
        return cls(kind=CONNECTED_ACCOUNT, account_id=account_id)

    @property
    def is_platform(self) -> bool:
        return self.kind == PLATFORM


def is_direct_platform_payment(booking: Booking) -> bool:
    return booking.is_direct_platform_payment


def decide_routing(
    payment: Payment | None,
    booking: Booking,
    professional: ProfessionalProfile | None,
) -> RouteTarget:
    """
    Cash bookings without a deposit always settle on the platform account,
    whatever connected account may be on file. Everything else is a
    destination charge to the professional's connected account.
    """
    if is_direct_platform_payment(booking):
        return RouteTarget.platform()

    account_id = None
    if payment is not None and payment.professional_connected_account_id:
        account_id = payment.professional_connected_account_id
    elif professional is not None and professional.stripe_account_id:
        account_id = professional.stripe_account_id

    if not account_id:
        logger.error(
            f"No connected account for booking {booking.id} "
            f"(professional {booking.professional_profile_id})"
        )
        raise ConfigurationError(
            "Professional has no connected payment account",
            details={
                "booking_id": booking.id,
                "professional_profile_id": booking.professional_profile_id,
            },
        )

    return RouteTarget.connected_account(account_id)
