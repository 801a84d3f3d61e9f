# ============================================================================
# User Schemas
# ============================================================================
from pydantic import BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, field_validator
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import date, datetime
from uuid import UUID

from app.models.preferences import SUPPORTED_LANGUAGES
from app.models.user import User, UserRole, SubscriptionTier


# ============================================================================
# Role profiles (one variant per role, discriminated by ``role``)
# ============================================================================
class _ProfileBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

class StudentProfile(_ProfileBase):
    role: Literal["STUDENT"] = "STUDENT"
    academic_goals: List[str] = Field(default_factory=list)

class TutorProfile(_ProfileBase):
    role: Literal["TUTOR"] = "TUTOR"
    subjects: List[str] = Field(default_factory=list)
    qualifications: List[str] = Field(default_factory=list)
    hourly_rate: Optional[float] = Field(None, ge=0)
    bio: Optional[str] = Field(None, max_length=1000)
    rating: float = Field(0, ge=0, le=5)
    total_sessions: int = Field(0, ge=0)
    is_background_checked: bool = False

class ParentProfile(_ProfileBase):
    role: Literal["PARENT"] = "PARENT"

class AdminProfile(_ProfileBase):
    role: Literal["ADMIN"] = "ADMIN"

RoleProfile = Annotated[
    Union[StudentProfile, TutorProfile, ParentProfile, AdminProfile],
    Field(discriminator="role"),
]
role_profile_adapter: TypeAdapter = TypeAdapter(RoleProfile)

# Registration fields accepted per role
ROLE_FIELDS = {
    UserRole.STUDENT: {"academic_goals"},
    UserRole.TUTOR: {"subjects", "qualifications", "hourly_rate", "bio"},
    UserRole.PARENT: set(),
    UserRole.ADMIN: set(),
}


def build_role_profile(role: UserRole, data: Optional[Dict[str, Any]] = None):
    """Validate stored/submitted role data against the variant for ``role``."""
    return role_profile_adapter.validate_python({**(data or {}), "role": UserRole(role).value})


def dump_role_profile(profile) -> Dict[str, Any]:
    """Storage form: the role lives in its own column."""
    return profile.model_dump(exclude={"role"})


# ============================================================================
# Requests
# ============================================================================
class RegisterRequest(BaseModel):
    """User registration request"""
    email: EmailStr
    password: str = Field(..., max_length=128)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    role: UserRole
    date_of_birth: Optional[date] = None
    parent_email: Optional[EmailStr] = None
    # Student
    academic_goals: Optional[List[str]] = None
    # Tutor
    subjects: Optional[List[str]] = None
    qualifications: Optional[List[str]] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    bio: Optional[str] = Field(None, max_length=1000)

    def role_fields(self) -> Dict[str, Any]:
        """Role-specific fields that were actually supplied."""
        return {
            name: value
            for name, value in self.model_dump(
                include={"academic_goals", "subjects", "qualifications", "hourly_rate", "bio"}
            ).items()
            if value is not None
        }

class LoginRequest(BaseModel):
    """Email/password login request"""
    email: EmailStr
    password: str = Field(..., min_length=1)

class EmailRequest(BaseModel):
    """Forgot-password and resend-verification request"""
    email: EmailStr

class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None

class ResetPasswordRequest(BaseModel):
    token: str = ""
    password: str = ""

class ChangePasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""

class DeleteAccountRequest(BaseModel):
    password: str = ""

class ProfileUpdateRequest(BaseModel):
    """Self-service profile update; role fields must match the caller's role"""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    date_of_birth: Optional[date] = None
    profile_image: Optional[str] = Field(None, max_length=500)
    # Student
    academic_goals: Optional[List[str]] = None
    # Tutor
    subjects: Optional[List[str]] = None
    qualifications: Optional[List[str]] = None
    hourly_rate: Optional[float] = Field(None, ge=0)
    bio: Optional[str] = Field(None, max_length=1000)

    @field_validator("academic_goals", "subjects", "qualifications", mode="before")
    @classmethod
    def split_comma_list(cls, value):
        # Accept "Maths, Physics" as well as a list
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, list):
            return [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return value

    def account_fields(self) -> Dict[str, Any]:
        """Supplied account columns; names cannot be cleared, dob and image can."""
        fields = self.model_dump(
            include={"first_name", "last_name", "date_of_birth", "profile_image"},
            exclude_unset=True,
        )
        for name in ("first_name", "last_name"):
            if name in fields:
                if fields[name] is None:
                    del fields[name]
                else:
                    fields[name] = fields[name].strip()
        return fields

    def role_fields(self) -> Dict[str, Any]:
        """Supplied role fields; hourly_rate and bio may be cleared with null."""
        return {
            name: value
            for name, value in self.model_dump(
                include={"academic_goals", "subjects", "qualifications", "hourly_rate", "bio"},
                exclude_unset=True,
            ).items()
            if value is not None or name in ("hourly_rate", "bio")
        }


# ============================================================================
# Responses
# ============================================================================
class UserPublic(BaseModel):
    """Public projection of a user: never carries password or tokens"""
    id: UUID
    email: str
    first_name: str
    last_name: str
    role: UserRole
    profile: RoleProfile
    date_of_birth: Optional[date] = None
    profile_image: Optional[str] = None
    is_verified: bool
    subscription_tier: SubscriptionTier
    streak_count: int = 0
    total_points: int = 0
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserPublic":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            profile=build_role_profile(user.role, user.profile),
            date_of_birth=user.date_of_birth,
            profile_image=user.profile_image,
            is_verified=user.is_verified,
            subscription_tier=user.subscription_tier,
            streak_count=user.streak_count,
            total_points=user.total_points,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )

class TokenResponse(BaseModel):
    """Authentication token response"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires

class RegisterResult(BaseModel):
    user: UserPublic
    message: str

class LoginResult(BaseModel):
    user: UserPublic
    tokens: TokenResponse


# ============================================================================
# Preferences
# ============================================================================
class PreferencesUpdateRequest(BaseModel):
    study_reminders: Optional[bool] = None
    dark_mode: Optional[bool] = None
    language: Optional[str] = None
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    sms_notifications: Optional[bool] = None
    session_reminders: Optional[bool] = None
    progress_reports: Optional[bool] = None

    @field_validator("language")
    @classmethod
    def supported_language(cls, value):
        if value is not None and value not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Language must be one of: {', '.join(SUPPORTED_LANGUAGES)}")
        return value

class PreferencesPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    study_reminders: bool
    dark_mode: bool
    language: str
    timezone: str
    email_notifications: bool
    push_notifications: bool
    sms_notifications: bool
    session_reminders: bool
    progress_reports: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
