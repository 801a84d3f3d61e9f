# ============================================================================
# Create Admin User
# ============================================================================
"""
Script to create a verified admin user.

Usage:
    python scripts/create_admin.py --email admin@example.com --password SecurePass123 \
        --first-name Ada --last-name Admin
"""

import asyncio
import argparse
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import Settings, get_settings
from app.core.database import create_engine, create_session_maker, create_tables
from app.core.security import PasswordHasher
from app.models.user import UserRole
from app.repositories.preferences_repository import UserPreferencesRepository
from app.repositories.user_repository import UserRepository


async def create_admin(
    settings: Settings, email: str, password: str, first_name: str, last_name: str
) -> int:
    """Create an admin user. Returns the process exit code."""
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        print(f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long")
        return 1

    engine = create_engine(settings)
    try:
        await create_tables(engine)
        session_maker = create_session_maker(engine)
        users = UserRepository(session_maker)

        if await users.email_exists(email):
            print(f"User with email {email} already exists")
            return 1

        hasher = PasswordHasher(rounds=settings.BCRYPT_ROUNDS)
        user = await users.create({
            "email": email,
            "password_hash": await hasher.hash(password),
            "first_name": first_name,
            "last_name": last_name,
            "role": UserRole.ADMIN,
            "is_verified": True,
        })
        await UserPreferencesRepository(session_maker).create_defaults(user.id)
        print(f"Created admin user: {user.email} ({user.id})")
        return 0
    finally:
        await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Create admin user")
    parser.add_argument("--email", required=True, help="Email address")
    parser.add_argument("--password", required=True, help="Password")
    parser.add_argument("--first-name", default="Admin", help="First name")
    parser.add_argument("--last-name", default="User", help="Last name")

    args = parser.parse_args()
    sys.exit(asyncio.run(
        create_admin(get_settings(), args.email, args.password, args.first_name, args.last_name)
    ))

if __name__ == "__main__":
    main()
