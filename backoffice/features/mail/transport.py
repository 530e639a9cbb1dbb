"""
Mail transports.

Transports are synchronous; the outbox worker calls them in a thread.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from backoffice.core import config
from backoffice.features.mail.messages import MailMessage
from backoffice.utils import get_logger


log = get_logger(__name__)


class MailTransport(Protocol):
    def send(self, message: MailMessage) -> None: ...


class SmtpTransport:
    """Send through an SMTP server, with STARTTLS when enabled."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_email: str = "no-reply@example.com",
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email
        self.timeout = timeout

    def build(self, message: MailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.from_email
        msg["To"] = message.to
        msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    def send(self, message: MailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(self.build(message))
        log.info(f"Sent mail {message.subject!r} to {message.to}")


class LogTransport:
    """Write messages to the log instead of sending them (no MAIL_HOST configured)."""

    def send(self, message: MailMessage) -> None:
        log.info(f"Mail to {message.to}: {message.subject!r} (not sent, MAIL_HOST unset)")


def build_transport() -> MailTransport:
    if config.MAIL_HOST:
        return SmtpTransport(
            host=config.MAIL_HOST,
            port=config.MAIL_PORT,
            username=config.MAIL_USERNAME,
            password=config.MAIL_PASSWORD,
            use_tls=config.MAIL_USE_TLS,
            from_email=config.MAIL_FROM,
        )
    return LogTransport()
