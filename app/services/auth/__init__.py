# ============================================================================
# Auth Services Module
# ============================================================================
"""
Account lifecycle services.

Services:
- AuthService: registration, email verification, login, token refresh,
  password reset
"""

from app.services.auth.auth_service import AuthService

__all__ = ["AuthService"]
