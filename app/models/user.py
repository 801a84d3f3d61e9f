# ============================================================================
# User Model
# ============================================================================
from datetime import date, datetime, timezone
from sqlalchemy import Column, String, Integer, Boolean, Date, DateTime, ForeignKey
from sqlalchemy import Enum, JSON, Uuid, CheckConstraint
from sqlalchemy.orm import deferred
from typing import Optional
import uuid
import enum
from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, enum.Enum):
    STUDENT = "STUDENT"
    TUTOR = "TUTOR"
    PARENT = "PARENT"
    ADMIN = "ADMIN"

class SubscriptionTier(str, enum.Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"


def age_on(born: date, today: Optional[date] = None) -> int:
    """Completed years between ``born`` and ``today``."""
    today = today or date.today()
    had_birthday = (today.month, today.day) >= (born.month, born.day)
    return today.year - born.year - (0 if had_birthday else 1)


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lowercase
    password_hash = deferred(Column(String(255), nullable=False), raiseload=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    role = Column(Enum(UserRole), nullable=False, index=True)
    date_of_birth = Column(Date, nullable=True)
    profile_image = Column(String(500), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False, index=True)
    subscription_tier = Column(
        Enum(SubscriptionTier), nullable=False, default=SubscriptionTier.BASIC, index=True
    )
    parent_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Role-specific data, shape decided by ``role`` (see app.schemas.user.RoleProfile)
    profile = Column(JSON, nullable=False, default=dict)

    # Gamification counters
    streak_count = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    # One-time tokens, never loaded unless explicitly requested
    verification_token = deferred(Column(String(64), nullable=True, index=True), raiseload=True)
    verification_token_expiry = deferred(Column(DateTime(timezone=True), nullable=True), raiseload=True)
    reset_password_token = deferred(Column(String(64), nullable=True, index=True), raiseload=True)
    reset_password_token_expiry = deferred(Column(DateTime(timezone=True), nullable=True), raiseload=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("streak_count >= 0", name="ck_users_streak_count_non_negative"),
        CheckConstraint("total_points >= 0", name="ck_users_total_points_non_negative"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_minor(self, adult_age: int = 18, today: Optional[date] = None) -> bool:
        if not self.date_of_birth:
            return False
        return age_on(self.date_of_birth, today) < adult_age

    def __repr__(self):
        return f"<User {self.email} ({self.role.value})>"
