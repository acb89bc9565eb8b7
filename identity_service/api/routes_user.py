"""Profile endpoints for the signed-in identity."""
import logging

from fastapi import APIRouter

from identity_service.api.dependencies import AccountServiceDep, CurrentIdentityDep
from identity_service.models import schemas

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me", response_model=schemas.UserOut)
def get_profile(current_identity_id: CurrentIdentityDep, accounts: AccountServiceDep):
    """Return the current identity's public profile."""
    return schemas.UserOut.from_identity(accounts.get_identity(current_identity_id))


@router.patch("/me", response_model=schemas.UserOut)
def update_profile(
    data: schemas.UserUpdate,
    current_identity_id: CurrentIdentityDep,
    accounts: AccountServiceDep,
):
    """Update display name and/or avatar. Downstream systems receive an "updated" event."""
    identity = accounts.update_profile(current_identity_id, data)
    return schemas.UserOut.from_identity(identity)


@router.delete("/me", response_model=schemas.MessageOut)
def delete_account(current_identity_id: CurrentIdentityDep, accounts: AccountServiceDep):
    """
    Permanently delete the current identity and its provider links.

    Downstream systems receive a "deleted" event.
    """
    accounts.delete_identity(current_identity_id)
    return schemas.MessageOut(detail="Account deleted")
