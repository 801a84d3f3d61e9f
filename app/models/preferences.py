# ============================================================================
# User Preferences Model
# ============================================================================
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, CheckConstraint
import uuid
from app.core.database import Base
from app.models.user import utcnow

SUPPORTED_LANGUAGES = ("en", "es", "fr", "de")

# Values for a new row and for a reset
PREFERENCE_DEFAULTS = {
    "study_reminders": True,
    "dark_mode": False,
    "language": "en",
    "timezone": "UTC",
    "email_notifications": True,
    "push_notifications": True,
    "sms_notifications": False,
    "session_reminders": True,
    "progress_reports": True,
}

class UserPreferences(Base):
    __tablename__ = "user_preferences"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    study_reminders = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["study_reminders"])
    dark_mode = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["dark_mode"])
    language = Column(String(5), nullable=False, default=PREFERENCE_DEFAULTS["language"])
    timezone = Column(String(64), nullable=False, default=PREFERENCE_DEFAULTS["timezone"])
    email_notifications = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["email_notifications"])
    push_notifications = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["push_notifications"])
    sms_notifications = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["sms_notifications"])
    session_reminders = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["session_reminders"])
    progress_reports = Column(Boolean, nullable=False, default=PREFERENCE_DEFAULTS["progress_reports"])
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "language IN ('en', 'es', 'fr', 'de')",
            name="ck_user_preferences_language",
        ),
    )

    def __repr__(self):
        return f"<UserPreferences user={self.user_id}>"
