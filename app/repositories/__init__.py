from app.repositories.base import BaseRepository, PaginationResult, UpdateResult
from app.repositories.user_repository import UserRepository
from app.repositories.preferences_repository import UserPreferencesRepository

__all__ = [
    "BaseRepository", "PaginationResult", "UpdateResult",
    "UserRepository", "UserPreferencesRepository",
]
