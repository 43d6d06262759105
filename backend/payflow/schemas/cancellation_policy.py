"""Cancellation policy schemas."""

from decimal import Decimal

from pydantic import Field

from ..models.professional import CancellationPolicy, ProfessionalProfile
from .base import Money, StandardizedModel, StrictRequestModel


class CancellationPolicyUpdate(StrictRequestModel):
    """
    New cancellation policy for a professional.

    Range and ordering rules are checked by the service layer so that the
    API and any other caller get the same ValidationException.
    """

    enabled: bool
    charge_percentage_under_24h: Decimal = Field(default=Decimal("0"))
    charge_percentage_24_to_48h: Decimal = Field(default=Decimal("0"))

    def to_policy(self) -> CancellationPolicy:
        return CancellationPolicy(
            enabled=self.enabled,
            charge_percentage_under_24h=self.charge_percentage_under_24h,
            charge_percentage_24_to_48h=self.charge_percentage_24_to_48h,
        )


class CancellationPolicyResponse(StandardizedModel):
    professional_profile_id: str
    enabled: bool
    charge_percentage_under_24h: Money
    charge_percentage_24_to_48h: Money

    @classmethod
    def from_profile(cls, profile: ProfessionalProfile) -> "CancellationPolicyResponse":
        policy = profile.cancellation_policy
        return cls(
            professional_profile_id=profile.id,
            enabled=policy.enabled,
            charge_percentage_under_24h=policy.charge_percentage_under_24h,
            charge_percentage_24_to_48h=policy.charge_percentage_24_to_48h,
        )
