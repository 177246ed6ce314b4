"""
SMTP Delivery
=============

Process-scoped delivery handle. One instance is built at startup and shared by
every send; each send opens its own SMTP connection and closes it again.
"""

from __future__ import annotations

import logging
import smtplib
from collections.abc import Callable
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

from imap_mcp.config import Settings
from imap_mcp.contracts import DeliveryError

logger = logging.getLogger(__name__)


class SMTPDelivery:
    """Compose and submit messages as the configured account."""

    def __init__(
        self,
        settings: Settings,
        *,
        smtp_factory: Callable[..., smtplib.SMTP] | None = None,
    ) -> None:
        self._settings = settings
        if smtp_factory is None:
            smtp_factory = smtplib.SMTP_SSL if settings.smtp_secure else smtplib.SMTP
        self._smtp_factory = smtp_factory

    @property
    def sender(self) -> str:
        return self._settings.email_user

    def compose(
        self, *, to: str, subject: str, text: str, html: str | None = None
    ) -> EmailMessage:
        """Build the outgoing message; ``html`` becomes a text/html alternative."""
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.sender.rpartition("@")[2])
        msg.set_content(text)
        if html is not None:
            msg.add_alternative(html, subtype="html")
        return msg

    def send(self, *, to: str, subject: str, text: str, html: str | None = None) -> str:
        """
        Submit one message and return its Message-ID.

        ERRORS:
        - DeliveryError: any SMTP or socket failure, carrying its message
        """
        msg = self.compose(to=to, subject=subject, text=text, html=html)
        settings = self._settings

        try:
            with self._smtp_factory(
                settings.smtp_host, settings.smtp_port, timeout=settings.email_timeout
            ) as smtp:
                if not settings.smtp_secure:
                    smtp.ehlo()
                    if smtp.has_extn("starttls"):
                        smtp.starttls()
                        smtp.ehlo()
                smtp.login(settings.email_user, settings.email_password.get_secret_value())
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryError(str(e)) from e

        logger.info(f"Submitted message via {settings.smtp_host}:{settings.smtp_port}")
        return msg["Message-ID"]
