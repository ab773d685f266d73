"""Outbound email for password resets."""

import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from config import Settings
from errors import DeliveryError
from logger import get_logger

logger = get_logger(__name__)


class Mailer(Protocol):
    async def send(self, to: str, subject: str, body: str) -> None:
        """Deliver one message or raise DeliveryError."""
        ...


class SmtpMailer:
    def __init__(
        self,
        host: Optional[str],
        port: int,
        username: Optional[str],
        password: Optional[str],
        from_email: str,
        from_name: str,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_email,
            password=settings.smtp_password,
            from_email=settings.from_email,
            from_name=settings.from_name,
        )

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> None:
        if not self.host:
            logger.error("SMTP host is not configured")
            raise DeliveryError("Email could not be sent")

        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await run_in_threadpool(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed", to=to, error=str(e))
            raise DeliveryError("Email could not be sent")
        logger.info("Email sent", to=to, subject=subject)
