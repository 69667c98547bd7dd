"""Service for sending account emails."""

import logging
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

from ..domain.models import User

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Out-of-band channel delivering verification and reset links."""

    def send_verification_email(self, user: User, token: str) -> bool:
        ...

    def send_password_reset_email(self, user: User, token: str) -> bool:
        ...


class EmailService(Notifier):
    """Service for sending emails via SMTP."""

    def __init__(
        self,
        frontend_base_url: str,
        smtp_host: str = "",
        smtp_port: int = 587,
        smtp_username: str = "",
        smtp_password: str = "",
        from_email: str = "",
        from_name: str = "ShopHub",
        timeout: float = 10.0,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
    ):
        self.frontend_base_url = frontend_base_url.rstrip("/")
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self.enabled = bool(self.smtp_host and self.smtp_username and self.from_email)

    def send_verification_email(self, user: User, token: str) -> bool:
        """
        Send the email verification link.

        Args:
            user: Recipient account
            token: Plaintext verification token

        Returns:
            True if sent (or logged in development), False otherwise
        """
        verification_url = f"{self.frontend_base_url}/verify-email/{token}"

        if not self.enabled:
            logger.info("SMTP not configured; verification URL for %s: %s", user.email, verification_url)
            return True

        subject = "Verify Your Email - ShopHub"
        html_body = _render_html(
            title="Welcome to ShopHub!",
            accent="#2563eb",
            greeting=f"Hi {user.name},",
            intro="Thanks for signing up. Please verify your email address by clicking the button below:",
            button_label="Verify Email",
            url=verification_url,
            footnote=f"This link will expire in {_describe(self.verification_ttl)}.",
            closing="If you didn't create an account, you can safely ignore this email.",
        )
        text_body = f"""
        ShopHub - Email Verification

        Hi {user.name},

        Verify your email address by opening the link below:
        {verification_url}

        This link will expire in {_describe(self.verification_ttl)}.
        """

        return self._send_email(user.email, subject, html_body, text_body)

    def send_password_reset_email(self, user: User, token: str) -> bool:
        """Send the password reset link. Returns False when delivery failed."""
        reset_url = f"{self.frontend_base_url}/reset-password/{token}"

        if not self.enabled:
            logger.info("SMTP not configured; password reset URL for %s: %s", user.email, reset_url)
            return True

        subject = "Password Reset Request - ShopHub"
        html_body = _render_html(
            title="Password Reset Request",
            accent="#dc2626",
            greeting=f"Hi {user.name},",
            intro="You requested to reset your password. Click the button below to set a new password:",
            button_label="Reset Password",
            url=reset_url,
            footnote=f"This link will expire in {_describe(self.reset_ttl)}.",
            closing=(
                "If you didn't request this, please ignore this email "
                "and your password will remain unchanged."
            ),
        )
        text_body = f"""
        ShopHub - Password Reset

        Hi {user.name},

        Set a new password by opening the link below:
        {reset_url}

        This link will expire in {_describe(self.reset_ttl)}.
        """

        return self._send_email(user.email, subject, html_body, text_body)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = f"{self.from_name} <{self.from_email}>"
            msg["To"] = to_email

            msg.attach(MIMEText(text_body, "plain", "utf-8"))
            msg.attach(MIMEText(html_body, "html", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send email to %s", to_email)
            return False

        logger.info("Email sent to %s: %s", to_email, subject)
        return True


def _render_html(
    title: str,
    accent: str,
    greeting: str,
    intro: str,
    button_label: str,
    url: str,
    footnote: str,
    closing: str,
) -> str:
    year = datetime.now(timezone.utc).year
    return f"""
    <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <div style="background: {accent}; color: white; padding: 20px; text-align: center;">
                    <h1>{title}</h1>
                </div>
                <div style="background: #f9fafb; padding: 30px;">
                    <h2>{greeting}</h2>
                    <p>{intro}</p>
                    <a href="{url}"
                       style="display: inline-block; background: {accent}; color: white;
                              padding: 12px 30px; text-decoration: none; border-radius: 5px;
                              margin: 20px 0;">
                        {button_label}
                    </a>
                    <p>Or copy and paste this link into your browser:</p>
                    <p style="word-break: break-all; color: {accent};">{url}</p>
                    <p>{footnote}</p>
                    <p><strong>{closing}</strong></p>
                </div>
                <div style="text-align: center; margin-top: 20px; color: #6b7280; font-size: 14px;">
                    <p>&copy; {year} ShopHub. All rights reserved.</p>
                </div>
            </div>
        </body>
    </html>
    """


def _describe(ttl: timedelta) -> str:
    minutes = int(ttl.total_seconds() // 60)
    if minutes % 60:
        return f"{minutes} minutes" if minutes != 1 else "1 minute"
    hours = minutes // 60
    return f"{hours} hours" if hours != 1 else "1 hour"
