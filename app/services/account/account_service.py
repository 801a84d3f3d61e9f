# ============================================================================
# Account Service
# ============================================================================
import logging

from app.config import Settings
from app.core.exceptions import NotFoundError, UnauthorizedError, ValidationError
from app.core.security import PasswordHasher
from app.models.preferences import UserPreferences
from app.models.user import User
from app.repositories.preferences_repository import UserPreferencesRepository
from app.repositories.user_repository import WITH_PASSWORD, UserRepository
from app.schemas.responses import MessageResponse
from app.schemas.user import (
    ROLE_FIELDS,
    PreferencesUpdateRequest,
    ProfileUpdateRequest,
    UserPublic,
)

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "User not found"


class AccountService:
    """Operations a signed-in user performs on their own account."""

    def __init__(
        self,
        users: UserRepository,
        preferences: UserPreferencesRepository,
        passwords: PasswordHasher,
        settings: Settings,
    ):
        self.users = users
        self.preferences = preferences
        self.passwords = passwords
        self.settings = settings

    # =========================================================================
    # Profile
    # =========================================================================
    async def update_profile(self, user: User, data: ProfileUpdateRequest) -> UserPublic:
        account_fields = data.account_fields()
        role_fields = data.role_fields()
        if not account_fields and not role_fields:
            raise ValidationError("At least one field must be provided for update")

        unexpected = sorted(set(role_fields) - ROLE_FIELDS[user.role])
        if unexpected:
            raise ValidationError(
                f"Fields not allowed for role {user.role.value}: {', '.join(unexpected)}"
            )

        patch = dict(account_fields)
        if role_fields:
            # Merged onto the stored profile; the repository validates the result
            patch["profile"] = {**(user.profile or {}), **role_fields}

        updated = await self.users.update_by_id(user.id, patch)
        if not updated:
            raise NotFoundError(USER_NOT_FOUND)

        logger.info(f"Updated profile for user {user.id}")
        return UserPublic.from_user(updated)

    async def change_password(
        self, user: User, current_password: str, new_password: str
    ) -> MessageResponse:
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        if len(new_password) < self.settings.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"New password must be at least {self.settings.MIN_PASSWORD_LENGTH} characters long"
            )

        stored = await self.users.find_by_id(user.id, options=WITH_PASSWORD)
        if not stored:
            raise NotFoundError(USER_NOT_FOUND)
        if not await self.passwords.verify(current_password, stored.password_hash):
            raise UnauthorizedError("Current password is incorrect")

        password_hash = await self.passwords.hash(new_password)
        # Conditional on the hash that was checked
        updated = await self.users.update_one(
            {"id": stored.id, "password_hash": stored.password_hash},
            {"password_hash": password_hash},
        )
        if not updated:
            raise UnauthorizedError("Current password is incorrect")

        logger.info(f"Password changed for user {user.id}")
        return MessageResponse(message="Password updated successfully")

    # =========================================================================
    # Preferences
    # =========================================================================
    async def get_preferences(self, user: User) -> UserPreferences:
        return await self.preferences.get_or_create(user.id)

    async def update_preferences(
        self, user: User, data: PreferencesUpdateRequest
    ) -> UserPreferences:
        updates = data.model_dump(exclude_none=True)
        if not updates:
            raise ValidationError("At least one preference must be provided for update")
        return await self.preferences.upsert_by_user_id(user.id, updates)

    async def reset_preferences(self, user: User) -> UserPreferences:
        logger.info(f"Reset preferences for user {user.id}")
        return await self.preferences.reset_to_defaults(user.id)
