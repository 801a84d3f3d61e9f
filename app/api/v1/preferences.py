# ============================================================================
# Preferences Endpoints
# ============================================================================
from fastapi import APIRouter, Depends

from app.api.deps import get_account_service, get_current_user
from app.models.user import User
from app.schemas.responses import DataResponse
from app.schemas.user import PreferencesPublic, PreferencesUpdateRequest
from app.services.account.account_service import AccountService

router = APIRouter(prefix="/preferences", tags=["preferences"])


@router.get("", response_model=DataResponse[PreferencesPublic])
async def get_preferences(
    current_user: User = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    """Get the caller's preferences, creating defaults on first access."""
    preferences = await account.get_preferences(current_user)
    return DataResponse(data=PreferencesPublic.model_validate(preferences))


@router.put("", response_model=DataResponse[PreferencesPublic])
async def update_preferences(
    payload: PreferencesUpdateRequest,
    current_user: User = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    preferences = await account.update_preferences(current_user, payload)
    return DataResponse(
        data=PreferencesPublic.model_validate(preferences),
        message="Preferences updated successfully",
    )


@router.post("/reset", response_model=DataResponse[PreferencesPublic])
async def reset_preferences(
    current_user: User = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    preferences = await account.reset_preferences(current_user)
    return DataResponse(
        data=PreferencesPublic.model_validate(preferences),
        message="Preferences reset to default",
    )
