"""Email service for password reset and password changed notices."""

from datetime import datetime, timezone

import aiosmtplib
import structlog

from blog_auth.config import get_settings

logger = structlog.get_logger(__name__)


def _describe_minutes(minutes: int) -> str:
    """Render a lifetime as "1 hour", "2 hours" or "45 minutes"."""
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


class EmailService:
    """Sends account emails over SMTP.

    Delivery is fire-and-forget from the caller's point of view: every
    failure is logged here and reported as False, never raised.
    """

    def _build_message(self, to_email: str, subject: str, body: str) -> str:
        settings = get_settings()
        return (
            f"From: {settings.email_from}\r\n"
            f"To: {to_email}\r\n"
            f"Subject: {subject}\r\n"
            f"Content-Type: text/plain; charset=utf-8\r\n"
            f"\r\n"
            f"{body}"
        )

    async def _send(self, to_email: str, subject: str, body: str, event: str) -> bool:
        settings = get_settings()

        if not settings.email_enabled:
            logger.info(f"{event}_skipped", to=to_email, reason="email_disabled")
            return False

        try:
            await aiosmtplib.send(
                self._build_message(to_email, subject, body),
                sender=settings.email_from,
                recipients=[to_email],
                hostname=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_username or None,
                password=settings.smtp_password or None,
                use_tls=settings.smtp_use_tls,
            )
            logger.info(f"{event}_sent", to=to_email)
            return True

        except Exception as e:
            logger.error(f"{event}_failed", to=to_email, error=str(e))
            return False

    async def send_password_reset_email(
        self, email: str, token: str, username: str
    ) -> bool:
        """Email a reset link valid for the configured reset-token lifetime.

        Returns True on success, False on failure.
        """
        settings = get_settings()
        reset_url = f"{settings.frontend_url.rstrip('/')}/reset-password?token={token}"
        body = (
            f"Hi {username},\n\n"
            f"We received a request to reset your password. "
            f"Use the link below to choose a new one:\n\n"
            f"{reset_url}\n\n"
            f"This link expires in {_describe_minutes(settings.reset_token_expire_minutes)}. "
            f"If you did not ask for a reset, "
            f"you can ignore this email.\n"
        )
        return await self._send(
            email, "Password Reset Request", body, "password_reset_email"
        )

    async def send_password_changed_email(self, email: str, username: str) -> bool:
        """Confirm that the account password was changed.

        Returns True on success, False on failure.
        """
        changed_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        body = (
            f"Hi {username},\n\n"
            f"Your password was changed on {changed_at}. If this was not you, "
            f"reset your password immediately.\n"
        )
        return await self._send(
            email, "Password Changed Successfully", body, "password_changed_email"
        )
