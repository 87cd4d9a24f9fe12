"""
Commission Tracker - Email Service

Handles transactional email sending over SMTP. Without an SMTP host the
message is only logged.
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from app.config import settings

logger = logging.getLogger(__name__)


class EmailProvider:
    """Email provider types."""
    SMTP = "smtp"
    MOCK = "mock"


@dataclass
class EmailMessage:
    """Email message data structure."""
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    reply_to: Optional[str] = None


class EmailService:
    """Service for sending transactional emails."""

    def __init__(self):
        self.from_email = settings.email_from or settings.smtp_username or "no-reply@localhost"
        self.from_name = settings.email_from_name

        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.smtp_use_tls = settings.smtp_use_tls

    def _determine_provider(self) -> str:
        """Determine which email provider to use based on configuration."""
        if self.smtp_host:
            return EmailProvider.SMTP
        return EmailProvider.MOCK

    async def send_email(self, message: EmailMessage) -> bool:
        """
        Send an email using the configured provider.

        Returns False when delivery failed; the failure is logged.
        """
        provider = self._determine_provider()

        try:
            if provider == EmailProvider.SMTP:
                return await self._send_via_smtp(message)
            return await self._send_mock(message)
        except Exception as e:
            logger.error(f"Failed to send email via {provider}: {e}")
            return False

    def _build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = ', '.join(message.to)
        if message.reply_to:
            msg['Reply-To'] = message.reply_to

        msg.attach(MIMEText(message.body_text, 'plain'))
        if message.body_html:
            msg.attach(MIMEText(message.body_html, 'html'))
        return msg

    def _deliver(self, message: EmailMessage) -> None:
        msg = self._build_mime(message)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, message.to, msg.as_string())

    async def _send_via_smtp(self, message: EmailMessage) -> bool:
        """Send email via SMTP without blocking the event loop."""
        try:
            await asyncio.to_thread(self._deliver, message)
            logger.info(f"Email sent via SMTP to {message.to}")
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send failed: {e}")
            return False

    async def _send_mock(self, message: EmailMessage) -> bool:
        """Mock email sending for development."""
        logger.info(f"[MOCK EMAIL] To: {message.to} | Subject: {message.subject}")
        logger.debug(f"[MOCK EMAIL] Body: {message.body_text[:200]}...")
        return True

    # ===========================================
    # TRANSACTIONAL EMAIL TEMPLATES
    # ===========================================

    async def send_password_reset(
        self,
        to_email: str,
        reset_url: str,
        ttl_minutes: int,
        name: Optional[str] = None,
    ) -> bool:
        """Send password reset email."""
        subject = f"Reset your password - {settings.app_name}"
        greeting = f"Hi {name}," if name else "Hi,"

        body_html = f"""
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h1 style="color: #1d4ed8;">Reset your password</h1>
                <p>{greeting}</p>
                <p>We received a request to reset your password. Click the button below to choose a new one:</p>
                <p>
                    <a href="{reset_url}"
                       style="display: inline-block; background-color: #1d4ed8; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px;">
                        Reset password
                    </a>
                </p>
                <p>This link expires in {ttl_minutes} minutes.</p>
                <p>If you did not request this, you can safely ignore this email.</p>
            </div>
        </body>
        </html>
        """

        body_text = f"""
        {greeting}

        We received a request to reset your password. Visit the link below to choose a new one:

        {reset_url}

        This link expires in {ttl_minutes} minutes.

        If you did not request this, you can safely ignore this email.
        """

        return await self.send_email(EmailMessage(
            to=[to_email],
            subject=subject,
            body_text=body_text,
            body_html=body_html,
        ))


email_service = EmailService()
