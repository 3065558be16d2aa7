"""
Publisher Failure Notifications
===============================

Sends the one-time email telling a publisher's contact that polling their
endpoint kept failing. Delivery is best effort: transport failures are
logged and reported in the result, never raised to the caller.
"""

import html
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Callable, Optional

import certifi

from ..config.settings import SmtpSettings
from ..database.models import Publisher
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import NotificationError

SUBJECT_TEMPLATE = "{app_name} publisher - endpoint error notification"


@dataclass
class NotificationResult:
    """Outcome of one notification attempt."""
    recipient: Optional[str]
    success: bool
    error: Optional[str] = None
    sent_at: Optional[datetime] = None

    def __post_init__(self):
        if self.success and not self.sent_at:
            self.sent_at = datetime.now(timezone.utc)


class EmailNotifier:
    """Builds and sends endpoint failure emails over SMTP."""

    def __init__(
        self,
        smtp: SmtpSettings,
        app_name: str = "GeoPoll",
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ):
        """Initialize notifier.

        Args:
            smtp: Mail transport settings
            app_name: Product name used in subject and body
            smtp_factory: SMTP client constructor, replaceable in tests
        """
        self.smtp = smtp
        self.app_name = app_name
        self.smtp_factory = smtp_factory
        self.logger = get_logger_for_component("email_notifier")

    @property
    def subject(self) -> str:
        return SUBJECT_TEMPLATE.format(app_name=self.app_name)

    def build_message(self, publisher: Publisher) -> EmailMessage:
        """Build the endpoint failure email for ``publisher``."""
        description = publisher.description or publisher.title or "(no description)"

        text_body = (
            "Notification Error.\n\n"
            f"{self.app_name} has unsuccessfully tried to connect to your endpoint.\n"
            f"Description: {description}.\n"
            f"Endpoint: {publisher.endpoint}.\n"
        )
        html_body = (
            "Notification Error.<hr>\n"
            f"{html.escape(self.app_name)} has unsuccessfully tried to connect to your endpoint. <br>\n"
            f"Description: {html.escape(description)}. <br>\n"
            f"Endpoint: {html.escape(publisher.endpoint)}."
        )

        message = EmailMessage()
        message["Subject"] = self.subject
        message["From"] = self.smtp.from_address
        message["To"] = publisher.email
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid(domain=self.smtp.domain)
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message

    def notify_endpoint_failure(self, publisher: Publisher) -> NotificationResult:
        """Email the publisher's contact about their failing endpoint.

        Never raises for delivery problems; see the returned result.
        """
        if not publisher.email:
            self.logger.warning(
                f"Publisher {publisher.id} has no contact email, skipping notification",
                extra={"publisher_id": publisher.id},
            )
            return NotificationResult(
                recipient=None, success=False, error="Publisher has no contact email"
            )

        try:
            self._send(self.build_message(publisher))
        except (smtplib.SMTPException, OSError, ValueError) as e:
            error = NotificationError(
                f"Failed to send endpoint notification for publisher {publisher.id}: {e}",
                recipient=publisher.email,
            )
            self.logger.error(str(error), extra=error.to_dict())
            return NotificationResult(recipient=publisher.email, success=False, error=str(error))

        self.logger.info(
            f"Sent endpoint failure notification for publisher {publisher.id} to {publisher.email}",
            extra={"publisher_id": publisher.id},
        )
        return NotificationResult(recipient=publisher.email, success=True)

    def _send(self, message: EmailMessage) -> None:
        with self.smtp_factory(
            self.smtp.address,
            self.smtp.port,
            local_hostname=self.smtp.domain,
            timeout=self.smtp.timeout,
        ) as server:
            server.ehlo()
            if self.smtp.enable_starttls_auto and server.has_extn("starttls"):
                server.starttls(context=ssl.create_default_context(cafile=certifi.where()))
                server.ehlo()
            server.login(self.smtp.user_name, self.smtp.password)
            server.send_message(message)
