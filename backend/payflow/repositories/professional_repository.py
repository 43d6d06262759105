"""Professional profile repository: connected account and policy settings."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, RepositoryException
from ..models.professional import CancellationPolicy, ProfessionalProfile
from ..services.charge_calculator import validate_cancellation_policy
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ProfessionalRepository(BaseRepository[ProfessionalProfile]):
    def __init__(self, db: Session):
        super().__init__(db, ProfessionalProfile)

    def get_cancellation_policy(self, profile_id: str) -> Optional[CancellationPolicy]:
        profile = self.get_by_id(profile_id)
        if profile is None:
            return None
        return profile.cancellation_policy

    def save_cancellation_policy(
        self, profile_id: str, policy: CancellationPolicy
    ) -> ProfessionalProfile:
        """
        Validate and persist a cancellation policy.

        Raises:
            ValidationException: rate outside 0-100 or under-24h below 24-48h
            NotFoundException: unknown profile
        """
        validate_cancellation_policy(policy)

        profile = self.get_by_id(profile_id)
        if profile is None:
            raise NotFoundException(
                f"Professional profile {profile_id} not found", code="PROFILE_NOT_FOUND"
            )

        try:
            profile.cancellation_policy_enabled = policy.enabled
            profile.cancellation_24h_charge_percentage = policy.charge_percentage_under_24h
            profile.cancellation_48h_charge_percentage = policy.charge_percentage_24_to_48h
            self.db.flush()
        except Exception as e:
            self.logger.error(f"Failed to save cancellation policy for {profile_id}: {str(e)}")
            raise RepositoryException(f"Failed to save cancellation policy: {str(e)}")

        logger.info(
            "Saved cancellation policy for %s (enabled=%s, <24h=%s, 24-48h=%s)",
            profile_id,
            policy.enabled,
            policy.charge_percentage_under_24h,
            policy.charge_percentage_24_to_48h,
        )
        return profile
