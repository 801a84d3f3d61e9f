# ============================================================================
# Email Notification Service
# ============================================================================
import asyncio
import logging
import re
import smtplib
from email.message import EmailMessage
from html import escape, unescape
from typing import Optional

from app.config import Settings
from app.core.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


def html_to_text(html: str) -> str:
    """Rough plain-text alternative for clients that do not render HTML."""
    text = unescape(_TAG_RE.sub("", html))
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


class EmailService:
    """Transactional email over SMTP"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.app_name = settings.APP_NAME
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(
            self.settings.SMTP_HOST,
            self.settings.SMTP_PORT,
            timeout=self.settings.EMAIL_TIMEOUT_SECONDS,
        ) as smtp:
            if self.settings.SMTP_USE_TLS:
                smtp.starttls()
            if self.settings.SMTP_USER:
                smtp.login(self.settings.SMTP_USER, self.settings.SMTP_PASSWORD)
            smtp.send_message(message)

    async def send_email(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        """Send one message; raises EmailDeliveryError on any failure."""
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.settings.EMAIL_FROM
        message["To"] = to
        message.set_content(text or html_to_text(html))
        message.add_alternative(html, subtype="html")

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._deliver, message),
                timeout=self.settings.EMAIL_TIMEOUT_SECONDS,
            )
        except (smtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise EmailDeliveryError(to) from e

        logger.info(f"Email sent successfully to {to}")

    # =========================================================================
    # Templates
    # =========================================================================
    # Every interpolated value is HTML-escaped
    async def send_verification_email(self, email: str, token: str) -> None:
        verification_url = escape(f"{self.frontend_url}/verify-email?token={token}")
        app_name = escape(self.app_name)
        await self.send_email(
            to=email,
            subject=f"Verify your {self.app_name} account",
            html=f"""
<h1>Welcome to {app_name}!</h1>
<p>Please click the link below to verify your email address:</p>
<a href="{verification_url}">Verify Email</a>
<p>If you didn't create an account, you can safely ignore this email.</p>
""",
        )

    async def send_parent_notification_email(
        self, parent_email: str, child_first_name: str, child_last_name: str
    ) -> None:
        child_name = escape(f"{child_first_name} {child_last_name}")
        app_name = escape(self.app_name)
        await self.send_email(
            to=parent_email,
            subject=f"Your child has registered for {self.app_name}",
            html=f"""
<h1>Account Registration Notification</h1>
<p>Your child {child_name} has registered for an account on {app_name}.</p>
<p>As their parent/guardian, you will receive regular progress reports and can monitor their learning journey.</p>
<p>If you have any questions, please contact our support team.</p>
""",
        )

    async def send_password_reset_email(self, email: str, token: str, expires_minutes: int = 60) -> None:
        reset_url = escape(f"{self.frontend_url}/reset-password?token={token}")
        app_name = escape(self.app_name)
        await self.send_email(
            to=email,
            subject=f"Reset your password - {self.app_name}",
            html=f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #3b82f6;">Password Reset Request</h1>
  <p>You requested to reset your password for your {app_name} account.</p>
  <p><a href="{reset_url}">Reset Password</a></p>
  <p>Or copy and paste this link into your browser:</p>
  <p style="color: #64748b; word-break: break-all;">{reset_url}</p>
  <p><strong>Important:</strong> This link will expire in {int(expires_minutes)} minutes.</p>
  <p>If you didn't request this password reset, please ignore this email. Your password will remain unchanged.</p>
  <p>The {app_name} Team</p>
</div>
""",
        )
