# ============================================================================
# API Dependencies
# ============================================================================
from typing import Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import logging

from app.core.container import Container
from app.core.exceptions import ForbiddenError, RateLimitExceeded, UnauthorizedError
from app.models.user import User, UserRole
from app.repositories.user_repository import UserRepository
from app.services.account.account_service import AccountService
from app.services.auth.auth_service import AuthService

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


# ============================================================================
# Container Dependencies
# ============================================================================
def get_container(request: Request) -> Container:
    """
    Get the service container from app state.

    The container is built once at startup (see ``app.main.lifespan``) and
    tests swap it by assigning ``app.state.container`` directly.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service container not initialized"
        )
    return container


def get_auth_service(container: Container = Depends(get_container)) -> AuthService:
    return container.auth


def get_user_repository(container: Container = Depends(get_container)) -> UserRepository:
    return container.users


def get_account_service(container: Container = Depends(get_container)) -> AccountService:
    return container.account


# ============================================================================
# Authentication Dependencies
# ============================================================================
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth: AuthService = Depends(get_auth_service),
) -> User:
    """Resolve the bearer token to a verified user or fail with 401."""
    if not credentials or not credentials.credentials:
        raise UnauthorizedError("No token provided")
    return await auth.authenticate(credentials.credentials)


def require_roles(*roles: UserRole):
    """Dependency to restrict an endpoint to the given roles"""
    allowed = set(roles)

    async def check_role(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError("Insufficient permissions")
        return current_user

    return check_role


# ============================================================================
# Rate Limiting Dependencies
# ============================================================================
async def rate_limit_auth(
    request: Request,
    container: Container = Depends(get_container),
) -> None:
    """Per-client fixed-window limit on the auth endpoints."""
    if container.cache is None:
        return

    client_ip = request.client.host if request.client else "unknown"
    settings = container.settings
    allowed, _ = await container.cache.check_rate_limit(
        f"rate_limit:auth:{client_ip}",
        settings.RATE_LIMIT_MAX_REQUESTS,
        window=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        logger.warning(f"Rate limit exceeded for {client_ip} on {request.url.path}")
        raise RateLimitExceeded(retry_after=settings.RATE_LIMIT_WINDOW_SECONDS)
