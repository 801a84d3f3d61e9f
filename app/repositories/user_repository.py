# ============================================================================
# User Repository
# ============================================================================
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import undefer

from app.core.exceptions import ValidationError
from app.models.user import User, UserRole, utcnow
from app.repositories.base import BaseRepository, Filter, LoadOptions, UpdateResult
from app.schemas.user import build_role_profile, dump_role_profile

UserId = Union[str, uuid.UUID]

WITH_PASSWORD = (undefer(User.password_hash),)
WITH_VERIFICATION_TOKEN = (
    undefer(User.verification_token),
    undefer(User.verification_token_expiry),
)
WITH_RESET_TOKEN = (
    undefer(User.reset_password_token),
    undefer(User.reset_password_token_expiry),
)


def validated_profile(role: UserRole, profile: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Check ``profile`` against the variant for ``role`` and return its storage form."""
    try:
        return dump_role_profile(build_role_profile(role, dict(profile or {})))
    except PydanticValidationError as e:
        error = e.errors()[0]
        # First loc entry is the union tag
        field = ".".join(str(part) for part in error["loc"][1:]) or "profile"
        raise ValidationError(
            f"Invalid {UserRole(role).value} profile: {field}: {error['msg']}"
        ) from e


class UserRepository(BaseRepository[User]):
    """
    Persistence operations for users.

    Emails are stored lowercase and every lookup lowercases its input.
    Password hash and one-time tokens are deferred columns: default reads
    leave them unloaded and only the lookups below load them.

    Every write of ``profile`` is validated against the user's role, so the
    stored JSON always matches one role variant.
    """

    model = User
    immutable_fields = frozenset({"id", "role"})

    def _normalize(self, values: Dict[str, Any]) -> Dict[str, Any]:
        if values.get("email"):
            values["email"] = values["email"].strip().lower()
        if values.get("role") is not None:
            values["profile"] = validated_profile(values["role"], values.get("profile"))
        return values

    # =========================================================================
    # Profile-aware updates (role cannot change, so it is read from the row)
    # =========================================================================
    async def update_one(
        self,
        filters: Filter,
        patch: Mapping[str, Any],
        options: LoadOptions = None,
    ) -> Optional[User]:
        if "profile" not in patch:
            return await super().update_one(filters, patch, options=options)

        target = await self.find_one(filters)
        if target is None:
            return None
        patch = {**patch, "profile": validated_profile(target.role, patch["profile"])}
        # Pin the write to the row whose role was checked
        filters = [*self._conditions(filters), User.id == target.id]
        return await super().update_one(filters, patch, options=options)

    async def update_many(self, filters: Filter, patch: Mapping[str, Any]) -> UpdateResult:
        if "profile" not in patch:
            return await super().update_many(filters, patch)

        roles = await self.distinct("role", filters)
        if not roles:
            return UpdateResult(matched_count=0, modified_count=0)
        if len(roles) > 1:
            raise ValidationError("Profile updates must target users of a single role")
        patch = {**patch, "profile": validated_profile(roles[0], patch["profile"])}
        return await super().update_many([*self._conditions(filters), User.role == roles[0]], patch)

    # =========================================================================
    # Email lookups
    # =========================================================================
    async def find_by_email(self, email: str) -> Optional[User]:
        return await self.find_one({"email": email.strip().lower()})

    async def find_by_email_with_password(self, email: str) -> Optional[User]:
        return await self.find_one({"email": email.strip().lower()}, options=WITH_PASSWORD)

    async def email_exists(self, email: str) -> bool:
        return await self.exists({"email": email.strip().lower()})

    async def find_by_role(self, role: UserRole, extra_filters: Optional[Dict[str, Any]] = None) -> List[User]:
        return await self.find({**(extra_filters or {}), "role": role})

    async def update_last_login(self, user_id: UserId) -> Optional[User]:
        return await self.update_by_id(user_id, {"last_login_at": utcnow()})

    # =========================================================================
    # Email verification token
    # =========================================================================
    def _live_verification_token(self, token: str) -> Filter:
        return [
            User.verification_token == token,
            User.verification_token_expiry > utcnow(),
        ]

    async def find_by_verification_token(self, token: str) -> Optional[User]:
        """Match only while the token has not expired."""
        return await self.find_one(
            self._live_verification_token(token), options=WITH_VERIFICATION_TOKEN
        )

    async def update_verification_token(
        self, user_id: UserId, token: str, expiry: datetime
    ) -> Optional[User]:
        return await self.update_by_id(
            user_id,
            {"verification_token": token, "verification_token_expiry": expiry},
            options=WITH_VERIFICATION_TOKEN,
        )

    async def verify_user_email(self, user_id: UserId, token: Optional[str] = None) -> Optional[User]:
        """
        Mark the user verified and clear the verification token in one write.

        With ``token`` the write only happens while that token is still stored
        and unexpired, so two concurrent verifications cannot both succeed.
        """
        pk = self._coerce_id(user_id)
        if pk is None:
            return None
        filters = [User.id == pk]
        if token is not None:
            filters += self._live_verification_token(token)
        return await self.update_one(
            filters,
            {
                "is_verified": True,
                "verification_token": None,
                "verification_token_expiry": None,
            },
        )

    # =========================================================================
    # Password reset token
    # =========================================================================
    def _live_reset_token(self, token: str) -> Filter:
        return [
            User.reset_password_token == token,
            User.reset_password_token_expiry > utcnow(),
        ]

    async def find_by_reset_password_token(self, token: str) -> Optional[User]:
        """Match only while the token has not expired."""
        return await self.find_one(self._live_reset_token(token), options=WITH_RESET_TOKEN)

    async def update_reset_password_token(
        self, user_id: UserId, token: str, expiry: datetime
    ) -> Optional[User]:
        return await self.update_by_id(
            user_id,
            {"reset_password_token": token, "reset_password_token_expiry": expiry},
            options=WITH_RESET_TOKEN,
        )

    async def reset_password(
        self, user_id: UserId, password_hash: str, token: Optional[str] = None
    ) -> Optional[User]:
        """
        Store a new password hash and clear the reset token in one write.

        With ``token`` the write is conditional on that token still being
        stored and unexpired (single use under concurrency).
        """
        pk = self._coerce_id(user_id)
        if pk is None:
            return None
        filters = [User.id == pk]
        if token is not None:
            filters += self._live_reset_token(token)
        return await self.update_one(
            filters,
            {
                "password_hash": password_hash,
                "reset_password_token": None,
                "reset_password_token_expiry": None,
            },
        )
