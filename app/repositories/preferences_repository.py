# ============================================================================
# User Preferences Repository
# ============================================================================
import uuid
from typing import Any, Mapping, Optional, Union

from sqlalchemy.exc import IntegrityError

from app.models.preferences import PREFERENCE_DEFAULTS, UserPreferences
from app.repositories.base import BaseRepository


class UserPreferencesRepository(BaseRepository[UserPreferences]):
    model = UserPreferences
    immutable_fields = frozenset({"id", "user_id"})

    async def create_defaults(self, user_id: uuid.UUID) -> UserPreferences:
        return await self.create({"user_id": user_id})

    async def find_by_user_id(self, user_id: Union[str, uuid.UUID]) -> Optional[UserPreferences]:
        pk = self._coerce_id(user_id)
        if pk is None:
            return None
        return await self.find_one({"user_id": pk})

    async def get_or_create(self, user_id: uuid.UUID) -> UserPreferences:
        """Preferences for ``user_id``, creating the default row if it is missing."""
        preferences = await self.find_by_user_id(user_id)
        if preferences is not None:
            return preferences
        try:
            return await self.create_defaults(user_id)
        except IntegrityError:
            # Created concurrently; user_id is unique
            return await self.find_by_user_id(user_id)

    async def update_by_user_id(
        self, user_id: Union[str, uuid.UUID], updates: Mapping[str, Any]
    ) -> Optional[UserPreferences]:
        pk = self._coerce_id(user_id)
        if pk is None:
            return None
        return await self.update_one({"user_id": pk}, updates)

    async def upsert_by_user_id(self, user_id: uuid.UUID, updates: Mapping[str, Any]) -> UserPreferences:
        """Apply ``updates`` to the user's row, creating it from defaults first if needed."""
        await self.get_or_create(user_id)
        return await self.update_by_user_id(user_id, updates)

    async def reset_to_defaults(self, user_id: uuid.UUID) -> UserPreferences:
        return await self.upsert_by_user_id(user_id, PREFERENCE_DEFAULTS)
