# ============================================================================
# Auth Service Tests
# ============================================================================
import asyncio
from datetime import date, timedelta
import pytest

from app.core.exceptions import (
    ConflictError,
    EmailDeliveryError,
    InternalError,
    UnauthorizedError,
    ValidationError,
)
from app.models.user import UserRole, utcnow
from app.repositories.user_repository import WITH_VERIFICATION_TOKEN, WITH_RESET_TOKEN
from app.schemas.user import RegisterRequest, StudentProfile, TutorProfile
from app.services.auth.auth_service import (
    RESET_SENT_MESSAGE,
    VERIFICATION_SENT_MESSAGE,
)


def years_ago(years: int) -> date:
    return date(date.today().year - years, 6, 15)


class TestRegistration:
    """Tests for account registration"""

    async def test_new_account_is_unverified_with_token(self, auth_service, user_repo, student_data):
        result = await auth_service.register(RegisterRequest(**student_data()))

        stored = await user_repo.find_one(
            {"email": "tendai@example.com"}, options=WITH_VERIFICATION_TOKEN
        )
        assert stored.is_verified is False
        assert len(stored.verification_token) == 64
        assert stored.verification_token_expiry is not None
        assert result.user.email == "tendai@example.com"
        assert result.message.startswith("Registration successful")

    async def test_public_projection_has_no_secrets(self, auth_service, student_data):
        result = await auth_service.register(RegisterRequest(**student_data()))

        dumped = result.user.model_dump()
        for field in (
            "password",
            "password_hash",
            "verification_token",
            "verification_token_expiry",
            "reset_password_token",
            "reset_password_token_expiry",
        ):
            assert field not in dumped

    async def test_duplicate_email_conflicts(self, auth_service, student_data, tutor_data):
        await auth_service.register(RegisterRequest(**student_data()))

        with pytest.raises(ConflictError) as exc_info:
            await auth_service.register(
                RegisterRequest(**tutor_data(email="TENDAI@example.com"))
            )
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "User with this email already exists"

    @pytest.mark.parametrize("age", [12, 19, 30])
    async def test_student_age_outside_range_rejected(self, auth_service, student_data, age):
        data = student_data(date_of_birth=years_ago(age).isoformat())

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register(RegisterRequest(**data))
        assert exc_info.value.detail == "Students must be between 13 and 18 years old"

    async def test_minor_needs_parent_email(self, auth_service, student_data):
        data = student_data(parent_email=None)

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register(RegisterRequest(**data))
        assert exc_info.value.detail == "Parent email is required for users under 18"

    async def test_minor_with_parent_email_notifies_parent(self, auth_service, student_data, email_service):
        await auth_service.register(RegisterRequest(**student_data()))

        recipients = [call.kwargs["to"] for call in email_service.send_email.await_args_list]
        assert recipients == ["tendai@example.com", "parent@example.com"]

    async def test_eighteen_year_old_needs_no_parent(self, auth_service, student_data):
        data = student_data(date_of_birth=years_ago(18).isoformat(), parent_email=None)

        result = await auth_service.register(RegisterRequest(**data))

        assert result.user.role == UserRole.STUDENT

    async def test_age_gate_only_applies_to_students(self, auth_service, tutor_data):
        data = tutor_data(date_of_birth=years_ago(40).isoformat())

        result = await auth_service.register(RegisterRequest(**data))

        assert result.user.role == UserRole.TUTOR

    async def test_role_profiles_initialized(self, auth_service, student_data, tutor_data):
        student = await auth_service.register(RegisterRequest(**student_data(academic_goals=None)))
        tutor = await auth_service.register(RegisterRequest(**tutor_data()))

        assert isinstance(student.user.profile, StudentProfile)
        assert student.user.profile.academic_goals == []
        assert isinstance(tutor.user.profile, TutorProfile)
        assert tutor.user.profile.subjects == ["Mathematics", "Physics"]
        assert tutor.user.profile.qualifications == []
        assert tutor.user.profile.rating == 0
        assert tutor.user.profile.is_background_checked is False

    async def test_fields_of_another_role_rejected(self, auth_service, tutor_data):
        data = tutor_data(role="PARENT")

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register(RegisterRequest(**data))
        assert "bio" in exc_info.value.detail

    async def test_short_password_rejected(self, auth_service, tutor_data):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.register(RegisterRequest(**tutor_data(password="short")))
        assert exc_info.value.detail == "Password must be at least 8 characters long"

    async def test_preferences_created(self, auth_service, container, tutor_data):
        result = await auth_service.register(RegisterRequest(**tutor_data()))

        preferences = await container.preferences.find_by_user_id(result.user.id)
        assert preferences is not None
        assert preferences.language == "en"

    async def test_email_failure_surfaces_after_user_created(self, auth_service, user_repo, tutor_data, email_service):
        email_service.send_email.side_effect = EmailDeliveryError("rudo@example.com")

        with pytest.raises(InternalError) as exc_info:
            await auth_service.register(RegisterRequest(**tutor_data()))

        assert exc_info.value.status_code == 500
        assert await user_repo.email_exists("rudo@example.com")

    async def test_unexpected_email_error_wrapped(self, auth_service, tutor_data, email_service):
        email_service.send_email.side_effect = RuntimeError("provider exploded")

        with pytest.raises(InternalError) as exc_info:
            await auth_service.register(RegisterRequest(**tutor_data()))
        assert exc_info.value.detail == "Failed to send email"


class TestEmailVerification:
    """Tests for verify and resend"""

    async def test_verify_then_verify_again(self, auth_service, user_repo, tutor_data, sent_tokens):
        await auth_service.register(RegisterRequest(**tutor_data()))
        token = sent_tokens("rudo@example.com")[0]

        first = await auth_service.verify_email(token)
        assert first.message == "Email verified successfully! You can now log in."
        assert (await user_repo.find_by_email("rudo@example.com")).is_verified is True

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.verify_email(token)
        assert exc_info.value.detail == "Invalid or expired verification token"

    async def test_concurrent_verification_consumes_token_once(self, auth_service, tutor_data, sent_tokens):
        await auth_service.register(RegisterRequest(**tutor_data()))
        token = sent_tokens("rudo@example.com")[0]

        results = await asyncio.gather(
            auth_service.verify_email(token),
            auth_service.verify_email(token),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, ValidationError)]
        assert len(successes) == 1
        assert len(failures) == 1

    async def test_missing_token(self, auth_service):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.verify_email("")
        assert exc_info.value.detail == "Verification token is required"

    async def test_expired_token(self, auth_service, user_repo, tutor_data, sent_tokens):
        result = await auth_service.register(RegisterRequest(**tutor_data()))
        token = sent_tokens("rudo@example.com")[0]
        await user_repo.update_verification_token(
            result.user.id, token, utcnow() - timedelta(minutes=1)
        )

        with pytest.raises(ValidationError):
            await auth_service.verify_email(token)

    async def test_verified_user_with_live_token_is_left_unchanged(self, auth_service, user_repo, verified_tutor):
        email, _ = await verified_tutor()
        user = await user_repo.find_by_email(email)
        await user_repo.update_verification_token(
            user.id, "d" * 64, utcnow() + timedelta(hours=1)
        )
        before = await user_repo.find_by_id(user.id)

        result = await auth_service.verify_email("d" * 64)

        assert result.message == "Email already verified. You can now log in."
        stored = await user_repo.find_by_id(user.id, options=WITH_VERIFICATION_TOKEN)
        assert stored.is_verified is True
        assert stored.verification_token == "d" * 64
        assert stored.updated_at == before.updated_at

    async def test_resend_for_unknown_email_is_generic(self, auth_service, email_service):
        result = await auth_service.resend_verification_email("ghost@example.com")

        assert result.message == VERIFICATION_SENT_MESSAGE
        email_service.send_email.assert_not_awaited()

    async def test_resend_replaces_token(self, auth_service, tutor_data, sent_tokens):
        await auth_service.register(RegisterRequest(**tutor_data()))
        old_token = sent_tokens("rudo@example.com")[0]

        result = await auth_service.resend_verification_email("rudo@example.com")
        new_token = sent_tokens("rudo@example.com")[-1]

        assert result.message == VERIFICATION_SENT_MESSAGE
        assert new_token != old_token
        with pytest.raises(ValidationError):
            await auth_service.verify_email(old_token)
        assert (await auth_service.verify_email(new_token)).success is True

    async def test_resend_for_verified_account_rejected(self, auth_service, verified_tutor):
        email, _ = await verified_tutor()

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.resend_verification_email(email)
        assert exc_info.value.detail == "Email is already verified"


class TestLogin:
    """Tests for login"""

    async def test_unverified_login_rejected(self, auth_service, tutor_data):
        await auth_service.register(RegisterRequest(**tutor_data()))

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.login("rudo@example.com", "SecurePass123")
        assert exc_info.value.detail == "Please verify your email address before logging in"

    async def test_login_after_verification(self, auth_service, user_repo, verified_tutor):
        email, password = await verified_tutor()

        result = await auth_service.login(email.upper(), password)

        assert result.tokens.access_token
        assert result.tokens.refresh_token
        assert result.tokens.expires_in == 15 * 60
        assert result.user.last_login_at is not None
        assert (await user_repo.find_by_email(email)).last_login_at is not None

    async def test_bad_credentials_share_one_message(self, auth_service, verified_tutor):
        email, _ = await verified_tutor()

        with pytest.raises(UnauthorizedError) as wrong_password:
            await auth_service.login(email, "WrongPass123")
        with pytest.raises(UnauthorizedError) as unknown_email:
            await auth_service.login("ghost@example.com", "WrongPass123")

        assert wrong_password.value.detail == unknown_email.value.detail == "Invalid email or password"

    async def test_authenticate_resolves_access_token(self, auth_service, verified_tutor):
        email, password = await verified_tutor()
        result = await auth_service.login(email, password)

        user = await auth_service.authenticate(result.tokens.access_token)

        assert user.email == email


class TestRefreshToken:
    """Tests for token rotation"""

    async def test_refresh_rotates_both_tokens(self, auth_service, verified_tutor):
        email, password = await verified_tutor()
        login = await auth_service.login(email, password)

        await asyncio.sleep(1.1)
        refreshed = await auth_service.refresh_token(login.tokens.refresh_token)

        assert refreshed.access_token != login.tokens.access_token
        assert refreshed.refresh_token != login.tokens.refresh_token

    @pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
    async def test_malformed_refresh_token(self, auth_service, token):
        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.refresh_token(token)
        assert exc_info.value.detail == "Invalid refresh token"

    async def test_access_token_cannot_refresh(self, auth_service, verified_tutor):
        email, password = await verified_tutor()
        login = await auth_service.login(email, password)

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.refresh_token(login.tokens.access_token)
        assert exc_info.value.detail == "Invalid refresh token"

    async def test_refresh_for_deleted_user(self, auth_service, user_repo, verified_tutor):
        email, password = await verified_tutor()
        login = await auth_service.login(email, password)
        await user_repo.delete_one({"email": email})

        with pytest.raises(UnauthorizedError) as exc_info:
            await auth_service.refresh_token(login.tokens.refresh_token)
        assert exc_info.value.detail == "Invalid refresh token"


class TestPasswordReset:
    """Tests for forgot/reset password"""

    async def test_forgot_password_is_enumeration_safe(self, auth_service, verified_tutor, email_service):
        email, _ = await verified_tutor()
        email_service.send_email.reset_mock()

        unknown = await auth_service.forgot_password("ghost@example.com")
        assert email_service.send_email.await_count == 0
        known = await auth_service.forgot_password(email)

        assert unknown.model_dump() == known.model_dump()
        assert known.message == RESET_SENT_MESSAGE
        assert email_service.send_email.await_count == 1

    async def test_weak_password_leaves_hash_untouched(self, auth_service, verified_tutor, sent_tokens):
        email, password = await verified_tutor()
        await auth_service.forgot_password(email)
        token = sent_tokens(email)[-1]

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.reset_password(token, "short")
        assert exc_info.value.detail == "Password must be at least 8 characters long"

        assert (await auth_service.login(email, password)).tokens.access_token

    async def test_reset_replaces_password_once(self, auth_service, user_repo, verified_tutor, sent_tokens):
        email, old_password = await verified_tutor()
        await auth_service.forgot_password(email)
        token = sent_tokens(email)[-1]

        result = await auth_service.reset_password(token, "NewPassword123!")
        assert result.message.startswith("Password reset successful")

        with pytest.raises(UnauthorizedError):
            await auth_service.login(email, old_password)
        assert (await auth_service.login(email, "NewPassword123!")).tokens.access_token

        stored = await user_repo.find_by_email(email)
        with_token = await user_repo.find_by_id(stored.id, options=WITH_RESET_TOKEN)
        assert with_token.reset_password_token is None

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.reset_password(token, "AnotherPass123!")
        assert exc_info.value.detail == "Invalid or expired reset token"

    async def test_missing_reset_token(self, auth_service):
        with pytest.raises(ValidationError) as exc_info:
            await auth_service.reset_password("", "NewPassword123!")
        assert exc_info.value.detail == "Reset token is required"

    async def test_expired_reset_token_rejected(self, auth_service, user_repo, verified_tutor, sent_tokens):
        email, password = await verified_tutor()
        await auth_service.forgot_password(email)
        token = sent_tokens(email)[-1]
        user = await user_repo.find_by_email(email)
        await user_repo.update_reset_password_token(
            user.id, token, utcnow() - timedelta(minutes=1)
        )

        with pytest.raises(ValidationError) as exc_info:
            await auth_service.reset_password(token, "NewPassword123!")
        assert exc_info.value.detail == "Invalid or expired reset token"

        assert (await auth_service.login(email, password)).tokens.access_token

    async def test_concurrent_reset_consumes_token_once(self, auth_service, verified_tutor, sent_tokens):
        email, old_password = await verified_tutor()
        await auth_service.forgot_password(email)
        token = sent_tokens(email)[-1]
        candidates = ["FirstNewPass123!", "SecondNewPass123!"]

        results = await asyncio.gather(
            *(auth_service.reset_password(token, candidate) for candidate in candidates),
            return_exceptions=True,
        )

        succeeded = [c for c, r in zip(candidates, results) if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, ValidationError)]
        assert len(succeeded) == 1
        assert len(failures) == 1
        assert failures[0].detail == "Invalid or expired reset token"

        (winner,) = succeeded
        loser = next(c for c in candidates if c != winner)
        assert (await auth_service.login(email, winner)).tokens.access_token
        for rejected in (old_password, loser):
            with pytest.raises(UnauthorizedError):
                await auth_service.login(email, rejected)
