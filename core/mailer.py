"""
core/mailer.py -- Outbound OTP email delivery.

Two transports share one interface (send_otp(email, code, purpose) -> bool):

  SMTPMailer    -- smtplib with STARTTLS (implicit TLS on port 465).
  ConsoleMailer -- writes the rendered message to a stream (stdout by default).
                   Used in development and whenever the placeholder SMTP host
                   is still configured.

Delivery never raises. Transport errors are logged and reported as False so
the caller decides whether a failed send is fatal to its flow.

OTP codes are part of the message body only. They are never passed to a logger.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or admin/. Purpose values arrive as plain strings ("VERIFICATION" | "LOGIN").
"""

from __future__ import annotations

import logging
import smtplib
import sys
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING, Protocol, TextIO

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("opsmind.mail")

_PRODUCT = "OpsMind ITSM"


class Mailer(Protocol):
    def send_otp(self, email: str, code: str, purpose: str) -> bool: ...


def render_otp_email(code: str, purpose: str, expiry_minutes: int) -> tuple[str, str, str]:
    """Return (subject, plain_text, html) for an OTP message."""
    if purpose == "VERIFICATION":
        subject = "Verify Your OpsMind Account"
        purpose_text = "verify your account"
    else:
        subject = "Your OpsMind Login OTP"
        purpose_text = "complete your login"

    text = (
        f"{_PRODUCT} - Your One-Time Password\n\n"
        f"Use the following OTP to {purpose_text}: {code}\n\n"
        f"This OTP is valid for {expiry_minutes} minutes.\n\n"
        "Do not share this code with anyone. OpsMind will never ask for your OTP.\n\n"
        "If you didn't request this OTP, please ignore this email.\n"
    )
    html = f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h2>{_PRODUCT}</h2>
    <p>Use the following OTP to {purpose_text}:</p>
    <p style="font-size: 32px; letter-spacing: 8px;"><strong>{code}</strong></p>
    <p>This OTP is valid for <strong>{expiry_minutes} minutes</strong>.</p>
    <p style="color: #dc2626;">Do not share this code with anyone. OpsMind will never ask for your OTP.</p>
    <p style="color: #666; font-size: 12px;">If you didn't request this OTP, please ignore this email.</p>
  </body>
</html>
"""
    return subject, text, html


class SMTPMailer:
    """Deliver OTP emails through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_address: str,
        expiry_minutes: int,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_address = from_address
        self.expiry_minutes = expiry_minutes
        self.timeout = timeout

    def send_otp(self, email: str, code: str, purpose: str) -> bool:
        subject, text, html = render_otp_email(code, purpose, self.expiry_minutes)
        message = MIMEMultipart("alternative")
        message["From"] = self.from_address
        message["To"] = email
        message["Subject"] = subject
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        try:
            if self.port == 465:
                server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if self.port != 465:
                    server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send %s OTP email to %s: %s", purpose, email, exc)
            return False

        logger.info("%s OTP email sent to %s", purpose, email)
        return True


class ConsoleMailer:
    """Development transport: print the rendered message instead of sending it."""

    def __init__(self, expiry_minutes: int, stream: TextIO | None = None) -> None:
        self.expiry_minutes = expiry_minutes
        self.stream = stream

    def send_otp(self, email: str, code: str, purpose: str) -> bool:
        subject, text, _ = render_otp_email(code, purpose, self.expiry_minutes)
        stream = self.stream or sys.stdout
        stream.write(f"\n--- email (not sent) ---\nTo: {email}\nSubject: {subject}\n\n{text}--- end email ---\n")
        stream.flush()
        logger.info("%s OTP email for %s written to console outbox", purpose, email)
        return True


def build_mailer(settings: Settings) -> Mailer:
    """Pick the transport for the configured environment.

    Settings refuses to load outside DEBUG without SMTP, so the console
    branch is only reachable in development.
    """
    if settings.smtp_enabled:
        return SMTPMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_address=settings.smtp_from_address,
            expiry_minutes=settings.otp_expiry_minutes,
        )
    if settings.mail_backend == "smtp":
        logger.warning("MAIL_BACKEND=smtp but SMTP_HOST is the placeholder -- using console outbox")
    return ConsoleMailer(expiry_minutes=settings.otp_expiry_minutes)
