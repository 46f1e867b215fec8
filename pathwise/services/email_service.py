"""
Transactional email via Resend.

Sending never raises into request handling: a missing RESEND_API_KEY or a
provider error is logged and reported as False so the triggering request
still succeeds.
"""
import logging
from html import escape
from typing import Optional

import resend

from pathwise.core.config import FRONTEND_URL, RESEND_API_KEY, RESEND_FROM_EMAIL

logger = logging.getLogger(__name__)


class EmailService:
    """Thin wrapper over the Resend SDK, built once at startup."""

    def __init__(self, api_key: Optional[str] = None, from_email: str = RESEND_FROM_EMAIL,
                 base_url: str = FRONTEND_URL):
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        if not api_key:
            logger.warning("RESEND_API_KEY not configured - emails will be skipped")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _send(self, to: str, subject: str, html: str) -> bool:
        if not self.configured:
            logger.info(f"Email skipped (provider not configured): subject={subject!r}")
            return False
        try:
            resend.api_key = self.api_key
            result = resend.Emails.send({
                "from": self.from_email,
                "to": [to],
                "subject": subject,
                "html": html.strip(),
            })
        except Exception as e:
            # Provider errors must not fail the triggering request
            logger.error(f"Failed to send email {subject!r}: {type(e).__name__}: {e}")
            return False

        email_id = result.get("id") if isinstance(result, dict) else getattr(result, "id", None)
        logger.info(f"Email sent: subject={subject!r}, id={email_id}")
        return True

    def send_invitation(self, email: str, token: str, institution_name: str,
                        inviter_name: str, role: str) -> bool:
        invitation_url = f"{self.base_url}/register?token={token}"
        html = f"""
        <p><strong>{escape(inviter_name)}</strong> invited you to join
        <strong>{escape(institution_name)}</strong> on Pathwise as a {escape(role)}.</p>
        <p><a href="{invitation_url}" style="color:#667eea;">Accept Invitation</a></p>
        """
        return self._send(email, f"You're invited to join {institution_name} on Pathwise", html)

    def send_license_usage_alert(self, admin_email: str, institution_name: str, used_seats: int,
                                 total_seats: int, usage_percentage: int) -> bool:
        html = f"""
        <p>{escape(institution_name)} has used {used_seats}/{total_seats} seats ({usage_percentage}%).</p>
        <p>Please monitor your usage or consider upgrading.</p>
        """
        return self._send(admin_email, f"License usage alert for {institution_name}", html)

    def send_password_reset(self, email: str, token: str, first_name: str) -> bool:
        reset_url = f"{self.base_url}/reset-password?token={token}"
        html = f"""
        <p>Hi {escape(first_name)},</p>
        <p>We received a request to reset your Pathwise password.</p>
        <p><a href="{reset_url}" style="color:#667eea;">Reset Password</a></p>
        <p>If you did not request this, you can ignore this email.</p>
        """
        return self._send(email, "Reset your Pathwise password", html)


def build_email_service() -> EmailService:
    return EmailService(api_key=RESEND_API_KEY)
