"""Email notifiers used by the account lifecycle workflows."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr

from .config import Settings
from .domain.exceptions import NotificationError

logger = logging.getLogger(__name__)


class SmtpEmailNotifier:
    """Deliver notifications through an SMTP relay, one connection per message."""

    def __init__(self, host: str, port: int, sender: str, timeout: float = 10.0) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._timeout = timeout

    def send(self, display_name: str, address: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = formataddr((display_name, address))
        message["Subject"] = subject
        message.set_content(body)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as conn:
                conn.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("smtp delivery to %s failed: %s", self._host, exc)
            raise NotificationError("email could not be sent") from exc
        logger.info("sent %r notification via %s", subject, self._host)


class LogEmailNotifier:
    """Development notifier that records messages instead of delivering them."""

    def __init__(self) -> None:
        self.outbox: list[EmailMessage] = []

    def send(self, display_name: str, address: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["To"] = formataddr((display_name, address))
        message["Subject"] = subject
        message.set_content(body)
        self.outbox.append(message)
        logger.info("email %r queued for %s (log backend)", subject, address)


def build_notifier(settings: Settings) -> SmtpEmailNotifier | LogEmailNotifier:
    """Instantiate the configured mail backend."""
    if settings.mail_backend == "smtp":
        logger.info("mail notifier using smtp relay %s:%s", settings.smtp_host, settings.smtp_port)
        return SmtpEmailNotifier(settings.smtp_host, settings.smtp_port, settings.mail_sender)
    logger.info("mail notifier using log backend")
    return LogEmailNotifier()
