# ============================================================================
# Authentication Service
# ============================================================================
"""
Account lifecycle for email/password users.

Per account there are two independent state machines:

- verification: ``unverified -> verified`` (exactly once, consumes the
  verification token)
- password reset: ``no reset pending <-> reset pending`` (a reset consumes
  the reset token; an unused token simply expires)

One-time tokens are consumed with a conditional write (the row is only
updated while it still holds the same unexpired token), so a token
authorizes at most one transition even under concurrent requests.

Responses for forgot-password and resend-verification do not depend on
whether the account exists.
"""
import logging
from datetime import date, timedelta
from typing import Awaitable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.config import Settings
from app.core.exceptions import (
    AppException,
    ConflictError,
    InternalError,
    UnauthorizedError,
    ValidationError,
)
from app.core.security import PasswordHasher, TokenPair, TokenService, generate_one_time_token
from app.models.user import User, UserRole, utcnow
from app.repositories.preferences_repository import UserPreferencesRepository
from app.repositories.user_repository import UserRepository
from app.schemas.responses import MessageResponse
from app.schemas.user import (
    ROLE_FIELDS,
    LoginResult,
    RegisterRequest,
    RegisterResult,
    TokenResponse,
    UserPublic,
    build_role_profile,
    dump_role_profile,
)
from app.services.notifications.email_service import EmailService

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"
EMAIL_NOT_VERIFIED = "Please verify your email address before logging in"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
INVALID_VERIFICATION_TOKEN = "Invalid or expired verification token"
INVALID_RESET_TOKEN = "Invalid or expired reset token"
REGISTRATION_MESSAGE = "Registration successful. Please check your email to verify your account."
VERIFICATION_SENT_MESSAGE = (
    "If an account with that email exists and is not verified, "
    "we have sent a verification email."
)
RESET_SENT_MESSAGE = "If an account with that email exists, we have sent a password reset link."


class AuthService:
    """Registration, verification, login, token refresh and password reset."""

    def __init__(
        self,
        users: UserRepository,
        preferences: UserPreferencesRepository,
        passwords: PasswordHasher,
        tokens: TokenService,
        email: EmailService,
        settings: Settings,
    ):
        self.users = users
        self.preferences = preferences
        self.passwords = passwords
        self.tokens = tokens
        self.email = email
        self.settings = settings

    # =========================================================================
    # Helpers
    # =========================================================================
    def _check_password_strength(self, password: Optional[str]) -> None:
        if not password or len(password) < self.settings.MIN_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password must be at least {self.settings.MIN_PASSWORD_LENGTH} characters long"
            )

    def _check_student_age(self, data: RegisterRequest, today: date) -> None:
        # Age by calendar year of birth
        age = today.year - data.date_of_birth.year
        if age < self.settings.STUDENT_MIN_AGE or age > self.settings.STUDENT_MAX_AGE:
            raise ValidationError(
                f"Students must be between {self.settings.STUDENT_MIN_AGE} "
                f"and {self.settings.STUDENT_MAX_AGE} years old"
            )
        if age < self.settings.ADULT_AGE and not data.parent_email:
            raise ValidationError(
                f"Parent email is required for users under {self.settings.ADULT_AGE}"
            )

    def _check_role_fields(self, data: RegisterRequest) -> None:
        unexpected = sorted(set(data.role_fields()) - ROLE_FIELDS[data.role])
        if unexpected:
            raise ValidationError(
                f"Fields not allowed for role {data.role.value}: {', '.join(unexpected)}"
            )
        if data.parent_email and data.role != UserRole.STUDENT:
            raise ValidationError("Parent email is only allowed for students")

    def _token_response(self, pair: TokenPair) -> TokenResponse:
        return TokenResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=int(self.tokens.access_expires.total_seconds()),
        )

    async def _notify(self, send: Awaitable[None]) -> None:
        """Await an email send; anything but our own errors becomes a 500."""
        try:
            await send
        except AppException:
            raise
        except Exception as e:
            logger.exception("Email collaborator failed")
            raise InternalError("Failed to send email") from e

    # =========================================================================
    # Registration & verification
    # =========================================================================
    async def register(self, data: RegisterRequest, today: Optional[date] = None) -> RegisterResult:
        if await self.users.email_exists(data.email):
            raise ConflictError("User with this email already exists")

        self._check_password_strength(data.password)
        self._check_role_fields(data)
        if data.role == UserRole.STUDENT and data.date_of_birth:
            self._check_student_age(data, today or date.today())

        profile = build_role_profile(data.role, data.role_fields())
        password_hash = await self.passwords.hash(data.password)
        verification_token = generate_one_time_token()
        verification_expiry = utcnow() + timedelta(
            hours=self.settings.VERIFICATION_TOKEN_EXPIRE_HOURS
        )

        try:
            user = await self.users.create({
                "email": data.email,
                "password_hash": password_hash,
                "first_name": data.first_name.strip(),
                "last_name": data.last_name.strip(),
                "role": data.role,
                "date_of_birth": data.date_of_birth,
                "profile": dump_role_profile(profile),
                "verification_token": verification_token,
                "verification_token_expiry": verification_expiry,
            })
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email
            raise ConflictError("User with this email already exists")

        # Separate write, not rolled back if it fails
        await self.preferences.create_defaults(user.id)
        logger.info(f"Registered user {user.id} ({user.role.value})")

        await self._notify(self.email.send_verification_email(user.email, verification_token))

        if data.role == UserRole.STUDENT and data.parent_email:
            await self._notify(
                self.email.send_parent_notification_email(
                    data.parent_email, user.first_name, user.last_name
                )
            )

        return RegisterResult(user=UserPublic.from_user(user), message=REGISTRATION_MESSAGE)

    async def verify_email(self, token: Optional[str]) -> MessageResponse:
        if not token:
            raise ValidationError("Verification token is required")

        user = await self.users.find_by_verification_token(token)
        if not user:
            raise ValidationError(INVALID_VERIFICATION_TOKEN)

        if user.is_verified:
            return MessageResponse(message="Email already verified. You can now log in.")

        # Conditional on the token still being stored: a concurrent request
        # that consumed it first leaves nothing to match here
        verified = await self.users.verify_user_email(user.id, token=token)
        if not verified:
            raise ValidationError(INVALID_VERIFICATION_TOKEN)

        logger.info(f"Verified email for user {user.id}")
        return MessageResponse(message="Email verified successfully! You can now log in.")

    async def resend_verification_email(self, email: str) -> MessageResponse:
        user = await self.users.find_by_email(email)
        if not user:
            return MessageResponse(message=VERIFICATION_SENT_MESSAGE)

        if user.is_verified:
            raise ValidationError("Email is already verified")

        token = generate_one_time_token()
        expiry = utcnow() + timedelta(hours=self.settings.VERIFICATION_TOKEN_EXPIRE_HOURS)
        await self.users.update_verification_token(user.id, token, expiry)
        await self._notify(self.email.send_verification_email(user.email, token))

        return MessageResponse(message=VERIFICATION_SENT_MESSAGE)

    # =========================================================================
    # Login & tokens
    # =========================================================================
    async def login(self, email: str, password: str) -> LoginResult:
        user = await self.users.find_by_email_with_password(email)
        # Same answer for unknown email and wrong password
        if not user or not await self.passwords.verify(password, user.password_hash):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not user.is_verified:
            raise UnauthorizedError(EMAIL_NOT_VERIFIED)

        try:
            user = await self.users.update_last_login(user.id) or user
        except SQLAlchemyError as e:
            logger.warning(f"Could not record last login for user {user.id}: {e}")

        tokens = self.tokens.generate_tokens(user.id)
        logger.info(f"User {user.id} logged in")
        return LoginResult(user=UserPublic.from_user(user), tokens=self._token_response(tokens))

    async def refresh_token(self, refresh_token: Optional[str]) -> TokenResponse:
        """Rotate both tokens; every failure reads as "Invalid refresh token"."""
        try:
            user_id = self.tokens.decode_refresh_token(refresh_token or "")
        except UnauthorizedError:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        user = await self.users.find_by_id(user_id)
        if not user or not user.is_verified:
            raise UnauthorizedError(INVALID_REFRESH_TOKEN)

        return self._token_response(self.tokens.generate_tokens(user.id))

    async def authenticate(self, access_token: str) -> User:
        """Resolve a bearer access token to a verified user."""
        user_id = self.tokens.decode_access_token(access_token)
        user = await self.users.find_by_id(user_id)
        if not user:
            raise UnauthorizedError("User not found")
        if not user.is_verified:
            raise UnauthorizedError("Please verify your email address")
        return user

    # =========================================================================
    # Password reset
    # =========================================================================
    async def forgot_password(self, email: str) -> MessageResponse:
        user = await self.users.find_by_email(email)
        if not user:
            return MessageResponse(message=RESET_SENT_MESSAGE)

        token = generate_one_time_token()
        expiry = utcnow() + timedelta(minutes=self.settings.RESET_TOKEN_EXPIRE_MINUTES)
        await self.users.update_reset_password_token(user.id, token, expiry)
        await self._notify(
            self.email.send_password_reset_email(
                user.email, token, expires_minutes=self.settings.RESET_TOKEN_EXPIRE_MINUTES
            )
        )
        logger.info(f"Password reset requested for user {user.id}")

        return MessageResponse(message=RESET_SENT_MESSAGE)

    async def reset_password(self, token: Optional[str], new_password: Optional[str]) -> MessageResponse:
        if not token:
            raise ValidationError("Reset token is required")
        self._check_password_strength(new_password)

        user = await self.users.find_by_reset_password_token(token)
        if not user:
            raise ValidationError(INVALID_RESET_TOKEN)

        password_hash = await self.passwords.hash(new_password)
        updated = await self.users.reset_password(user.id, password_hash, token=token)
        if not updated:
            raise ValidationError(INVALID_RESET_TOKEN)

        logger.info(f"Password reset for user {user.id}")
        return MessageResponse(
            message="Password reset successful. You can now log in with your new password."
        )
