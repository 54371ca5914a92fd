"""
Patient notifications.

Templates are plain strings with {{placeholder}} markers. Delivery is best
effort: a failed notification is logged and never reaches the caller, since
the booking it reports on is already committed.
"""

import logging
import re
import smtplib
from abc import ABC, abstractmethod
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Dict, Optional

from .config import settings

logger = logging.getLogger(__name__)

TEMPLATES: Dict[str, Dict[str, str]] = {
    "booking_confirmation": {
        "subject": "Appointment confirmed: {{date}} at {{time}}",
        "body": (
            "Hello {{name}},\n\n"
            "your appointment with {{customer_name}} on {{date}} at {{time}} is confirmed.\n\n"
            "If you cannot make it, cancel here:\n{{cancel_link}}\n"
        ),
    },
    "booking_cancelled": {
        "subject": "Appointment cancelled: {{date}} at {{time}}",
        "body": (
            "Hello {{name}},\n\n"
            "your appointment with {{customer_name}} on {{date}} at {{time}} has been cancelled.\n"
        ),
    },
}

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render(text: str, data: Dict[str, object]) -> str:
    """Replace {{key}} markers with values from ``data``; unknown keys stay as they are."""
    return _PLACEHOLDER.sub(lambda m: str(data[m.group(1)]) if m.group(1) in data else m.group(0), text)


def cancellation_link(appointment_id: int, token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/cancel/{appointment_id}?token={token}"


class Notifier(ABC):
    """Notification collaborator: ``notify(template, data)``."""

    @abstractmethod
    def notify(self, template: str, data: Dict[str, object]) -> None:
        ...


class LogNotifier(Notifier):
    """Writes notifications to the log. Used when no SMTP server is configured."""

    def notify(self, template: str, data: Dict[str, object]) -> None:
        content = TEMPLATES[template]
        logger.info(
            "Notification %s to %s: %s", template, data.get("to"), render(content["subject"], data)
        )


class SmtpNotifier(Notifier):
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        from_address: str = settings.email_from,
        timeout: float = settings.notification_timeout,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address
        self.timeout = timeout

    def notify(self, template: str, data: Dict[str, object]) -> None:
        content = TEMPLATES[template]

        msg = MIMEMultipart("alternative")
        msg["Subject"] = render(content["subject"], data)
        msg["From"] = self.from_address
        msg["To"] = str(data["to"])
        msg.attach(MIMEText(render(content["body"], data), "plain", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

        logger.info("Email %s sent to %s", template, data["to"])


def get_notifier() -> Notifier:
    if settings.smtp_host:
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
        )
    return LogNotifier()


def send_best_effort(notifier: Notifier, template: str, data: Dict[str, object]) -> None:
    try:
        notifier.notify(template, data)
    except Exception:
        logger.exception("Failed to send %s notification to %s", template, data.get("to"))


Defer = Callable[..., None]


def dispatch(defer: Optional[Defer], notifier: Optional[Notifier], template: str, data: Dict[str, object]) -> None:
    """Hand a notification to ``defer`` (e.g. ``BackgroundTasks.add_task``), or send it now."""
    if notifier is None:
        return
    if defer is None:
        send_best_effort(notifier, template, data)
    else:
        defer(send_best_effort, notifier, template, data)
