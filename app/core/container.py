# ============================================================================
# Service Container
# ============================================================================
"""
Wires repositories and services together once per process.

The container is stored on ``app.state`` at startup; request dependencies
read from it instead of constructing collaborators themselves.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings
from app.core.redis import RedisCache
from app.core.security import PasswordHasher, TokenService
from app.repositories.preferences_repository import UserPreferencesRepository
from app.repositories.user_repository import UserRepository
from app.services.account.account_service import AccountService
from app.services.auth.auth_service import AuthService
from app.services.notifications.email_service import EmailService


@dataclass
class Container:
    settings: Settings
    session_maker: async_sessionmaker[AsyncSession]
    users: UserRepository
    preferences: UserPreferencesRepository
    passwords: PasswordHasher
    tokens: TokenService
    email: EmailService
    auth: AuthService
    account: AccountService
    cache: Optional[RedisCache] = None


def build_container(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    email_service: Optional[EmailService] = None,
    cache: Optional[RedisCache] = None,
) -> Container:
    users = UserRepository(session_maker)
    preferences = UserPreferencesRepository(session_maker)
    passwords = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
    tokens = TokenService.from_settings(settings)
    email = email_service or EmailService(settings)

    auth = AuthService(
        users=users,
        preferences=preferences,
        passwords=passwords,
        tokens=tokens,
        email=email,
        settings=settings,
    )
    account = AccountService(
        users=users,
        preferences=preferences,
        passwords=passwords,
        settings=settings,
    )
    return Container(
        settings=settings,
        session_maker=session_maker,
        users=users,
        preferences=preferences,
        passwords=passwords,
        tokens=tokens,
        email=email,
        auth=auth,
        account=account,
        cache=cache,
    )
