# ============================================================================
# Main API Router
# ============================================================================
from fastapi import APIRouter

from app.api.v1 import auth, preferences, users

api_router = APIRouter()

# Registration, login, tokens, password reset, profile
api_router.include_router(auth.router)
# Profile and password changes, admin user listing
api_router.include_router(users.router)
# Per-user settings
api_router.include_router(preferences.router)
