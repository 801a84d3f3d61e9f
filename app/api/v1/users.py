# ============================================================================
# User Endpoints
# ============================================================================
"""
Account endpoints for signed-in users, plus admin user lookup.

Provides:
- Profile update (common and role-specific fields)
- Password change (requires the current password)
- Admin listing and lookup
"""
from fastapi import APIRouter, Depends, Query
from typing import Optional
from uuid import UUID

from app.api.deps import (
    get_account_service,
    get_current_user,
    get_user_repository,
    require_roles,
)
from app.core.exceptions import NotFoundError
from app.models.user import User, UserRole
from app.repositories.user_repository import UserRepository
from app.schemas.responses import DataResponse, MessageResponse, PaginatedResponse
from app.schemas.user import ChangePasswordRequest, ProfileUpdateRequest, UserPublic
from app.services.account.account_service import AccountService

router = APIRouter(prefix="/users", tags=["users"])


# ============================================================================
# Current User
# ============================================================================
@router.put("/profile", response_model=DataResponse[UserPublic])
async def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    """Update the caller's name, date of birth, image or role fields."""
    user = await account.update_profile(current_user, payload)
    return DataResponse(data=user, message="Profile updated successfully")


@router.put("/password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    account: AccountService = Depends(get_account_service),
):
    return await account.change_password(
        current_user, payload.current_password, payload.new_password
    )


# ============================================================================
# Admin
# ============================================================================
@router.get("", response_model=DataResponse[PaginatedResponse[UserPublic]])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[UserRole] = None,
    is_verified: Optional[bool] = None,
    users: UserRepository = Depends(get_user_repository),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    """List users newest first, optionally filtered by role and verification."""
    filters = {}
    if role:
        filters["role"] = role
    if is_verified is not None:
        filters["is_verified"] = is_verified

    result = await users.find_paginated(filters, page=page, limit=limit)
    return DataResponse(
        data=PaginatedResponse[UserPublic](
            items=[UserPublic.from_user(user) for user in result.items],
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
        )
    )


@router.get("/{user_id}", response_model=DataResponse[UserPublic])
async def get_user(
    user_id: UUID,
    users: UserRepository = Depends(get_user_repository),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    user = await users.find_by_id(user_id)
    if not user:
        raise NotFoundError("User not found")
    return DataResponse(data=UserPublic.from_user(user))
