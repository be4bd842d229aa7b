"""
Outgoing mail.

``Mailer.send`` returns once the message has been accepted by the SMTP
server (or logged, when no server is configured).  Delivery errors
propagate to the caller.
"""
import logging
from email.message import EmailMessage

import aiosmtplib

from postboard.config import settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
    ) -> None:
        self.host = settings.SMTP_HOST if host is None else host
        self.port = port or settings.SMTP_PORT
        self.username = settings.SMTP_USER if username is None else username
        self.password = settings.SMTP_PASSWORD if password is None else password
        self.sender = sender or settings.MAIL_FROM

    def build_message(self, to: str, html: str, subject: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(html, subtype="html")
        return message

    async def send(self, to: str, html: str, subject: str = "Change password") -> None:
        if not self.host:
            logger.info("SMTP not configured; mail to %s: %s", to, html)
            return

        await aiosmtplib.send(
            self.build_message(to, html, subject),
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            start_tls=True,
            timeout=10,
        )
        logger.info("Mail sent to %s", to)
