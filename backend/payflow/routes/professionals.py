"""Professional payment settings."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.exceptions import DomainException, NotFoundException
from ..database import get_db
from ..dependencies import require_internal_secret
from ..repositories.factory import RepositoryFactory
from ..schemas.cancellation_policy import CancellationPolicyResponse, CancellationPolicyUpdate

router = APIRouter(
    prefix="/api/professionals",
    tags=["professionals"],
    dependencies=[Depends(require_internal_secret)],
)


@router.get("/{profile_id}/cancellation-policy", response_model=CancellationPolicyResponse)
def get_cancellation_policy(profile_id: str, db: Session = Depends(get_db)) -> CancellationPolicyResponse:
    repository = RepositoryFactory.create_professional_repository(db)
    profile = repository.get_by_id(profile_id)
    if profile is None:
        raise NotFoundException(
            f"Professional profile {profile_id} not found", code="PROFILE_NOT_FOUND"
        ).to_http_exception()
    return CancellationPolicyResponse.from_profile(profile)


@router.put("/{profile_id}/cancellation-policy", response_model=CancellationPolicyResponse)
def update_cancellation_policy(
    profile_id: str,
    payload: CancellationPolicyUpdate,
    db: Session = Depends(get_db),
) -> CancellationPolicyResponse:
    repository = RepositoryFactory.create_professional_repository(db)
    try:
        with repository.transaction():
            profile = repository.save_cancellation_policy(profile_id, payload.to_policy())
    except DomainException as exc:
        raise exc.to_http_exception() from exc
    return CancellationPolicyResponse.from_profile(profile)
