"""
Email Service — outreach email delivery.

When SMTP is not configured, emails are logged but not sent (dev/test mode)
and reported as delivered.

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address (partnerships_jp@usespeak.com)
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from email_validator import EmailNotValidError, validate_email
from flask import current_app

logger = logging.getLogger(__name__)

DEFAULT_SENDER = "partnerships_jp@usespeak.com"


@dataclass
class EmailMessage:
    to: str
    subject: str
    body: str
    sender: str | None = None


@dataclass
class SendResult:
    to: str
    success: bool
    error: str | None = None

    def to_dict(self) -> dict:
        data = {"to": self.to, "success": self.success}
        if self.error:
            data["error"] = self.error
        return data


class EmailService:
    """Plain-text email sender with a log-only mode."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(cls, message: EmailMessage) -> SendResult:
        """Send one email. Failures are reported, never raised."""
        try:
            to = validate_email(message.to or "", check_deliverability=False).normalized
        except EmailNotValidError as exc:
            logger.warning("Email skipped: invalid recipient %r (%s)", message.to, exc)
            return SendResult(message.to or "", False, f"Invalid email address: {exc}")

        if not cls.is_configured():
            logger.info("Email (dev mode): to=%s subject='%s'", to, message.subject)
            return SendResult(to, True)

        try:
            cls._send_smtp(to_email=to, subject=message.subject, body=message.body,
                           sender=message.sender)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Email failed: to=%s error=%s", to, exc)
            return SendResult(to, False, str(exc)[:500])
        logger.info("Email sent: to=%s subject='%s'", to, message.subject)
        return SendResult(to, True)

    @classmethod
    def send_bulk(cls, messages: list[EmailMessage]) -> dict:
        """Send each message independently.

        Returns:
            {"success": bool, "results": [...], "successCount": n, "failureCount": n}
            where "success" is true when at least one message was delivered.
        """
        results = [cls.send(m) for m in messages]
        ok = sum(1 for r in results if r.success)
        return {
            "success": ok > 0,
            "results": [r.to_dict() for r in results],
            "successCount": ok,
            "failureCount": len(results) - ok,
        }

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, body: str, sender: str | None = None) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender or cfg.get("MAIL_DEFAULT_SENDER") or DEFAULT_SENDER
        msg["To"] = to_email
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
