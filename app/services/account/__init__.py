# ============================================================================
# Account Services Module
# ============================================================================
"""
Self-service account management for signed-in users.

Services:
- AccountService: profile updates, password change, preferences
"""

from app.services.account.account_service import AccountService

__all__ = ["AccountService"]
