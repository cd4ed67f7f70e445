"""Out-of-band delivery for magic links."""

from __future__ import annotations

import asyncio
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import structlog

from tutorhub.config.logging import mask_email
from tutorhub.exceptions import DeliveryError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class OutboundEmail:
    to: str
    subject: str
    text: str


class Mailer(Protocol):
    async def send(self, message: OutboundEmail) -> None: ...


def build_magic_link_email(
    *,
    to: str,
    tenant_name: str,
    sign_in_url: str,
    expires_in_minutes: int,
    support_email: str | None = None,
) -> OutboundEmail:
    lines = [
        "Hello,",
        "",
        f"Use the link below to sign in to the {tenant_name} parent portal.",
        "",
        sign_in_url,
        "",
        f"This link expires in {expires_in_minutes} minutes and can be used once.",
        "If you did not request it, you can ignore this email.",
    ]
    if support_email:
        lines += ["", f"Questions? Contact {support_email}."]
    return OutboundEmail(to=to, subject=f"Sign in to {tenant_name}", text="\n".join(lines))


class SmtpMailer:
    """Sends mail over SMTP (STARTTLS or implicit TLS)."""

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        from_email: str,
    ) -> None:
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._use_tls = use_tls
        self._from = from_email

    async def send(self, message: OutboundEmail) -> None:
        await asyncio.to_thread(self._send_sync, message)

    def _send_sync(self, message: OutboundEmail) -> None:
        msg = EmailMessage()
        msg["Subject"] = message.subject
        msg["From"] = self._from
        msg["To"] = message.to
        msg.set_content(message.text)

        context = ssl.create_default_context()
        try:
            if self._use_tls:
                with smtplib.SMTP(self._host, self._port, timeout=30) as server:
                    server.starttls(context=context)
                    if self._user and self._password:
                        server.login(self._user, self._password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP_SSL(
                    self._host, self._port, context=context, timeout=30
                ) as server:
                    if self._user and self._password:
                        server.login(self._user, self._password)
                    server.send_message(msg)
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            logger.error(
                "email_send_failed",
                to_email=message.to,
                host=self._host,
                error_type=type(exc).__name__,
            )
            raise DeliveryError("Email delivery failed") from exc

        logger.info("email_sent", to_email=message.to, subject=message.subject)


class LoggingMailer:
    """Dev mode: records that a message would have been sent, never its body."""

    async def send(self, message: OutboundEmail) -> None:
        logger.info("email_dev_mode", to=mask_email(message.to), subject=message.subject)


class OutboxMailer:
    """Keeps messages in memory."""

    def __init__(self) -> None:
        self.sent: list[OutboundEmail] = []

    async def send(self, message: OutboundEmail) -> None:
        self.sent.append(message)
