from decimal import Decimal

import pytest

from payflow.core.exceptions import NotFoundException, ValidationException
from payflow.models import CancellationPolicy
from payflow.repositories import ProfessionalRepository


@pytest.fixture
def repository(db):
    return ProfessionalRepository(db)


class TestCancellationPolicy:
    def test_save_and_read_back(self, repository, seed, db):
        profile = seed.professional(cancellation_policy_enabled=False)

        repository.save_cancellation_policy(
            profile.id, CancellationPolicy(True, Decimal("80"), Decimal("40"))
        )
        db.commit()

        policy = repository.get_cancellation_policy(profile.id)
        assert policy == CancellationPolicy(True, Decimal("80"), Decimal("40"))

    def test_unknown_profile(self, repository):
        assert repository.get_cancellation_policy("missing") is None
        with pytest.raises(NotFoundException):
            repository.save_cancellation_policy("missing", CancellationPolicy.disabled())

    def test_under_24h_rate_may_not_be_below_24_to_48h_rate(self, repository, seed):
        profile = seed.professional()
        with pytest.raises(ValidationException) as exc_info:
            repository.save_cancellation_policy(
                profile.id, CancellationPolicy(True, Decimal("20"), Decimal("30"))
            )
        assert exc_info.value.code == "INVALID_CANCELLATION_POLICY"

    def test_rate_above_100_rejected(self, repository, seed):
        profile = seed.professional()
        with pytest.raises(ValidationException):
            repository.save_cancellation_policy(
                profile.id, CancellationPolicy(True, Decimal("150"), Decimal("30"))
            )

    def test_invalid_policy_leaves_profile_untouched(self, repository, seed, db):
        profile = seed.professional()
        with pytest.raises(ValidationException):
            repository.save_cancellation_policy(
                profile.id, CancellationPolicy(True, Decimal("-1"), Decimal("0"))
            )
        db.refresh(profile)
        assert profile.cancellation_24h_charge_percentage == Decimal("50")
