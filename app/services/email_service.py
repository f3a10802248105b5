"""
SMTP email sender for emergency-contact alerts.
"""

from __future__ import annotations

import logging
import re
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

import aiosmtplib

from app.core.config import settings

logger = logging.getLogger(__name__)

_HEADER_UNSAFE = re.compile(r"[\r\n\x00-\x1f\x7f]")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_TAGS = re.compile(r"<[^>]+>")


def sanitize_header(value: str, max_length: int = 998) -> str:
    """Strip CR/LF and control characters so values cannot inject headers."""
    return _HEADER_UNSAFE.sub("", value or "")[:max_length]


def mask_email(address: Optional[str]) -> str:
    if not address or "@" not in address:
        return "***"
    local, domain = address.split("@", 1)
    return f"{local[:2]}***@{domain}"


def html_to_text(html: str) -> str:
    text = _TAGS.sub(" ", html)
    return re.sub(r"[ \t]+", " ", re.sub(r"\n\s*\n+", "\n\n", text)).strip()


class SmtpEmailSender:
    """Send HTML email through the configured SMTP relay.

    Returns False instead of raising on delivery errors; an empty SMTP_HOST
    means the channel is not configured.
    """

    def __init__(
        self,
        *,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port if port is not None else settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = use_tls if use_tls is not None else settings.SMTP_USE_TLS
        self.from_email = from_email or settings.SMTP_FROM_EMAIL
        self.from_name = from_name or settings.SMTP_FROM_NAME
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.host)

    def build_message(self, to: str, subject: str, html: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = Header(sanitize_header(subject, max_length=200), "utf-8")
        message["From"] = formataddr(
            (sanitize_header(self.from_name, max_length=100), sanitize_header(self.from_email))
        )
        message["To"] = sanitize_header(to)
        message.attach(MIMEText(html_to_text(html), "plain", "utf-8"))
        message.attach(MIMEText(html, "html", "utf-8"))
        return message

    async def send(self, to: str, subject: str, html: str) -> bool:
        if not self.configured:
            logger.warning("[alerts] SMTP not configured; email to %s skipped", mask_email(to))
            return False
        recipient = sanitize_header(to)
        if not _EMAIL_RE.match(recipient):
            logger.warning("[alerts] Invalid email address %s", mask_email(to))
            return False

        message = self.build_message(recipient, subject, html)
        try:
            async with aiosmtplib.SMTP(
                hostname=self.host,
                port=self.port,
                use_tls=self.use_tls,
                timeout=self.timeout,
            ) as smtp:
                if self.username:
                    await smtp.login(self.username, self.password)
                await smtp.send_message(message)
            logger.info("[alerts] Email sent to %s", mask_email(recipient))
            return True
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.error("[alerts] Email to %s failed: %s", mask_email(recipient), exc)
            return False
