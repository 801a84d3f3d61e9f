from app.models.user import User, UserRole, SubscriptionTier
from app.models.preferences import UserPreferences

__all__ = [
    "User", "UserRole", "SubscriptionTier", "UserPreferences",
]
