import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Protocol

from sqlalchemy import select

from membership import config
from membership.db import Storage
from membership.logger import get_logger
from membership.models import EmailLogRecord
from membership.tables import EmailLog

from .templates import Notification, template_args

logger = get_logger(__name__)


class NotificationError(Exception):
    pass


class MailTransport(Protocol):
    def send_mail(self, to: str, subject: str, html: str) -> None: ...


class SmtpTransport:
    """Gmail (or any SMTP over SSL) delivery."""

    def __init__(
        self,
        user: str = config.GMAIL_USER,
        password: str = config.GMAIL_APP_PASSWORD,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        sender_name: str = config.BRAND_NAME,
        timeout: float = 10.0,
    ):
        self.user = user
        self.password = password
        self.host = host
        self.port = port
        self.sender_name = sender_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.password)

    def send_mail(self, to: str, subject: str, html: str) -> None:
        if not self.is_configured:
            raise NotificationError("Gmail credentials not configured")

        message = EmailMessage()
        message["From"] = f'"{self.sender_name}" <{self.user}>'
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")

        with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as smtp:
            smtp.login(self.user, self.password)
            smtp.send_message(message)


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None


class Dispatcher:
    """Renders notifications, sends them and records every attempt in ``email_logs``.

    ``send`` never raises; ``dispatch`` is fire-and-forget and is what the
    services call after their transaction has committed.
    """

    def __init__(
        self,
        storage: Storage,
        transport: Optional[MailTransport] = None,
        background: bool = True,
        brand: str = config.BRAND_NAME,
        contact: str = config.GMAIL_USER,
        max_workers: int = 4,
    ):
        self.storage = storage
        self.transport = transport or SmtpTransport()
        self.brand = brand
        self.contact = contact
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="notify") if background else None

    def send(self, recipient: str, notification: Notification) -> SendResult:
        subject = f"{notification.kind.value} notification"
        try:
            subject = notification.subject(self.brand)
            self.transport.send_mail(recipient, subject, notification.html(self.brand, self.contact))
            result = SendResult(success=True)
            logger.info(f"Email sent to {recipient}: {subject}")
        except Exception as e:
            result = SendResult(success=False, error=str(e) or e.__class__.__name__)
            logger.error(f"Email failed to {recipient} ({notification.kind.value}): {result.error}")
            logger.debug(f"Template arguments: {template_args(notification)}")

        self._record(recipient, subject, notification, result)
        return result

    def dispatch(self, recipient: str, notification: Notification) -> Optional[Future]:
        if self._executor is None:
            self.send(recipient, notification)
            return None
        try:
            return self._executor.submit(self.send, recipient, notification)
        except RuntimeError as e:
            # executor already shut down
            logger.error(f"Could not schedule {notification.kind.value} to {recipient}: {e}")
            return None

    def email_logs(self) -> list[EmailLogRecord]:
        with self.storage.session() as session:
            rows = session.scalars(select(EmailLog).order_by(EmailLog.sent_at, EmailLog.id)).all()
            return [EmailLogRecord.model_validate(row) for row in rows]

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

    def _record(self, recipient: str, subject: str, notification: Notification, result: SendResult) -> None:
        try:
            with self.storage.session() as session:
                session.add(EmailLog(
                    email=recipient,
                    subject=subject,
                    type=notification.kind.value,
                    success=result.success,
                    error_message=result.error,
                ))
        except Exception as e:
            logger.error(f"Failed to log email to {recipient}: {e}")
