import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Protocol

from config import get_settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingMail:
    to: str
    subject: str
    body: str


class Mailer(Protocol):
    def send(self, mail: OutgoingMail) -> None: ...


class LogMailer:
    """Writes outgoing mail to the application log instead of delivering it."""

    def send(self, mail: OutgoingMail) -> None:
        logger.info(f"mail: to={mail.to} subject={mail.subject!r}\n{mail.body}")


class SMTPMailer:
    def __init__(self, host: str, port: int, sender: str) -> None:
        self.host = host
        self.port = port
        self.sender = sender

    def send(self, mail: OutgoingMail) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = mail.to
        message["Subject"] = mail.subject
        message.set_content(mail.body)
        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            smtp.send_message(message)
        logger.info(f"mail: delivered to={mail.to} via {self.host}:{self.port}")


_mailer: Optional[Mailer] = None


def get_mailer() -> Mailer:
    global _mailer
    if _mailer is None:
        settings = get_settings()
        if settings.mail_backend == "smtp":
            if not settings.smtp_host:
                raise RuntimeError("FINANCE_SMTP_HOST is required for smtp mail")
            _mailer = SMTPMailer(
                settings.smtp_host, settings.smtp_port, settings.mail_sender
            )
        else:
            _mailer = LogMailer()
    return _mailer
